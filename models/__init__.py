from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .facility import Facility
from .court import Court
from .slot import TimeSlot
from .booking import Booking, BookingStatus
from .court_day_lock import CourtDayLock
from .payment import Payment, PaymentStatus
from .refund import Refund, RefundStatus
