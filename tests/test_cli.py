from models import db
from models.booking import BookingStatus
from models.payment import PaymentStatus
from models.refund import Refund, RefundStatus
from models.user import User
from utils.clock import FixedClock, CLOCK_EXTENSION
from conftest import DAY

from datetime import datetime


def test_issue_session_creates_user_and_token(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["issue-session", "Coach@Example.com"])

    assert result.exit_code == 0
    token = result.output.strip().splitlines()[-1]
    user = User.query.filter_by(email="coach@example.com").one()
    assert "PLAYER" in user.role_names

    resp = client.get("/bookings/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200


def test_make_admin(app, factory):
    user = factory.user(email="boss@example.com")
    result = app.test_cli_runner().invoke(args=["make-admin", "boss@example.com"])

    assert "promoted to ADMIN" in result.output
    assert "ADMIN" in user.role_names


def test_complete_bookings_command(app, factory):
    booking = factory.booking(factory.court(), start="10:00", end="11:00")
    app.extensions[CLOCK_EXTENSION] = FixedClock(datetime.combine(DAY, datetime.min.time().replace(hour=23)))

    result = app.test_cli_runner().invoke(args=["complete-bookings"])

    assert "1 bookings completed" in result.output
    assert booking.status == BookingStatus.COMPLETED


def test_retry_refunds_command(app, factory, gateway):
    booking = factory.booking(factory.court(), start="10:00", end="11:00")
    payment = factory.payment(booking)
    refund = Refund(payment=payment, booking_id=booking.id, amount=payment.amount, percentage=100,
                    reason="Full refund", status=RefundStatus.PENDING, attempts=1,
                    failure_reason="Payment provider rejected the refund")
    db.session.add(refund)
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["retry-refunds"])

    assert "1 refunds retried, 1 completed" in result.output
    assert refund.status == RefundStatus.COMPLETED
    assert payment.status == PaymentStatus.REFUNDED
    assert gateway.refunds[0]["payment_ref"] == payment.gateway_payment_ref
