"""Shared fixtures: app on in-memory SQLite, fixed clock, fake gateway, factories."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.booking import Booking, BookingStatus
from models.court import Court
from models.facility import Facility, FacilityStatus
from models.payment import Payment, PaymentStatus
from models.slot import TimeSlot
from models.user import Role, User
from security.session import create_session
from services.errors import GatewayError
from services.payment_gateway import GATEWAY_EXTENSION
from utils.clock import CLOCK_EXTENSION, FixedClock

# Tuesday morning; DAY is two days later
NOW = datetime(2026, 3, 10, 8, 0)
DAY = date(2026, 3, 12)


class FakeGateway:
    """Records orders and refunds instead of calling Stripe."""

    def __init__(self):
        self.orders = []
        self.refunds = []
        self.fail_orders = False
        self.fail_refunds = False

    def create_order(self, amount, metadata):
        if self.fail_orders:
            raise GatewayError("Payment provider unavailable")
        ref = f"cs_test_{len(self.orders) + 1}"
        self.orders.append({"id": ref, "amount": amount, "metadata": metadata})
        return {"id": ref, "url": f"https://checkout.test/{ref}"}

    def process_refund(self, payment_ref, amount, reason):
        if self.fail_refunds:
            raise GatewayError("Payment provider rejected the refund")
        ref = f"re_test_{len(self.refunds) + 1}"
        self.refunds.append({"id": ref, "payment_ref": payment_ref, "amount": amount, "reason": reason})
        return ref


class Factory:
    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, email=None, roles=("PLAYER",)):
        user = User(email=email or f"user{self._next()}@example.com", full_name="Test User")
        for name in roles:
            user.roles.append(Role.query.filter_by(name=name).one())
        db.session.add(user)
        db.session.commit()
        return user

    def facility(self, owner=None, status=FacilityStatus.APPROVED):
        owner = owner or self.user(roles=("PLAYER", "FACILITY_OWNER"))
        n = self._next()
        facility = Facility(
            name=f"Arena {n}",
            location="Kathmandu",
            name_normalized=f"arena {n}",
            location_normalized="kathmandu",
            owner_user_id=owner.id,
            status=status,
        )
        db.session.add(facility)
        db.session.commit()
        return facility

    def court(self, facility=None, opening="06:00", closing="22:00", price="1500.00", is_active=True):
        facility = facility or self.facility()
        court = Court(
            facility_id=facility.id,
            name=f"Court {self._next()}",
            price_per_hour=Decimal(price),
            opening_time=opening,
            closing_time=closing,
            is_active=is_active,
        )
        db.session.add(court)
        db.session.commit()
        return court

    def booking(self, court, user=None, day=DAY, start="10:00", end="11:00",
                status=BookingStatus.CONFIRMED, amount="1500.00"):
        user = user or self.user()
        booking = Booking(
            user_id=user.id,
            court_id=court.id,
            booking_date=day,
            start_time=start,
            end_time=end,
            status=status,
            total_amount=Decimal(amount),
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    def payment(self, booking, status=PaymentStatus.COMPLETED, amount=None):
        payment = Payment(
            booking_id=booking.id,
            user_id=booking.user_id,
            amount=Decimal(amount) if amount else booking.total_amount,
            currency="INR",
            status=status,
            gateway_order_ref=f"cs_seed_{self._next()}",
            gateway_payment_ref=f"pi_seed_{self._seq}",
            paid_at=NOW if status == PaymentStatus.COMPLETED else None,
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    def block(self, court, day=DAY, start="12:00", end="13:00", reason="maintenance: Net repair"):
        slot = TimeSlot(
            court_id=court.id,
            slot_date=day,
            start_time=start,
            end_time=end,
            is_blocked=True,
            block_reason=reason,
        )
        db.session.add(slot)
        db.session.commit()
        return slot


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(clock, gateway):
    app = create_app(TestConfig)
    app.extensions[CLOCK_EXTENSION] = clock
    app.extensions[GATEWAY_EXTENSION] = gateway
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_session(user.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers
