from datetime import datetime
from models.db import db
from services.timeutils import TimeRange, booking_start, booking_end

class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    # statuses that occupy the court
    ACTIVE = (PENDING, CONFIRMED)
    TERMINAL = (CANCELLED, COMPLETED)
    ALL = (PENDING, CONFIRMED, CANCELLED, COMPLETED)


_ACTIVE_SQL = "status IN ('PENDING', 'CONFIRMED')"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)

    booking_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.PENDING)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    court = db.relationship("Court")

    __table_args__ = (
        db.Index("ix_booking_court_date", "court_id", "booking_date"),
        # Backstop for racing writers: two active bookings can never share a start.
        db.Index(
            "uq_booking_active_start",
            "court_id",
            "booking_date",
            "start_time",
            unique=True,
            sqlite_where=db.text(_ACTIVE_SQL),
            postgresql_where=db.text(_ACTIVE_SQL),
        ),
        db.CheckConstraint("start_time < end_time", name="ck_booking_time_order"),
    )

    @property
    def time_range(self):
        return TimeRange.from_strings(self.start_time, self.end_time)

    @property
    def starts_at(self):
        return booking_start(self.booking_date, self.start_time)

    @property
    def ends_at(self):
        return booking_end(self.booking_date, self.end_time)

    @property
    def is_active(self):
        return self.status in BookingStatus.ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "court_id": self.court_id,
            "date": self.booking_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "total_amount": str(self.total_amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
        }
