from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import services.cancellation as cancellation
from conftest import DAY
from models import db
from models.booking import BookingStatus
from models.payment import PaymentStatus
from models.refund import Refund, RefundStatus
from services.cancellation import admin_cancel_booking, cancel_booking, preview_cancellation, retry_pending_refunds
from services.errors import InvalidStateError, NotFoundError, PolicyError, RefundError

STARTS_AT = datetime.combine(DAY, datetime.min.time()) + timedelta(hours=10)


def _hours_before(hours):
    return STARTS_AT - timedelta(hours=hours)


def test_unpaid_booking_cancels_without_refund(factory, gateway):
    booking = factory.booking(factory.court(), status=BookingStatus.PENDING)

    outcome = cancel_booking(booking.id, booking.user_id, "Plans changed", _hours_before(30), gateway)

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.booking.cancel_reason == "Plans changed"
    assert outcome.booking.cancelled_at == _hours_before(30)
    assert outcome.decision.code == "FULL_REFUND"
    assert outcome.refund is None
    assert gateway.refunds == []


def test_partial_refund_keeps_payment_completed(factory, gateway):
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)

    outcome = cancel_booking(booking.id, booking.user_id, None, _hours_before(20), gateway)

    refund = outcome.refund
    assert refund.status == RefundStatus.COMPLETED
    assert refund.amount == Decimal("750.00")
    assert refund.percentage == 50
    assert refund.gateway_refund_ref == "re_test_1"
    assert gateway.refunds[0]["payment_ref"] == payment.gateway_payment_ref
    assert payment.status == PaymentStatus.COMPLETED


def test_full_refund_marks_payment_refunded(factory, gateway):
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)

    outcome = cancel_booking(booking.id, booking.user_id, None, _hours_before(48), gateway)

    assert outcome.refund.amount == Decimal("1500.00")
    assert payment.status == PaymentStatus.REFUNDED


def test_late_cancellation_is_allowed_without_refund(factory, gateway):
    booking = factory.booking(factory.court())
    factory.payment(booking)

    outcome = cancel_booking(booking.id, booking.user_id, None, _hours_before(5), gateway)

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.decision.refund_percentage == 0
    assert outcome.refund is None
    assert Refund.query.count() == 0


def test_gateway_failure_leaves_refund_pending(factory, gateway):
    gateway.fail_refunds = True
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)

    outcome = cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)

    assert outcome.booking.status == BookingStatus.CANCELLED
    refund = Refund.query.one()
    assert refund.status == RefundStatus.PENDING
    assert "rejected" in refund.failure_reason
    assert payment.status == PaymentStatus.COMPLETED


def test_pending_refund_is_paid_out_on_retry(factory, gateway):
    gateway.fail_refunds = True
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)
    cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)

    gateway.fail_refunds = False
    rows = retry_pending_refunds(_hours_before(29), gateway)

    refund = Refund.query.one()
    assert rows == [refund]
    assert refund.status == RefundStatus.COMPLETED
    assert refund.attempts == 2
    assert refund.failure_reason is None
    assert payment.status == PaymentStatus.REFUNDED
    assert len(gateway.refunds) == 1
    assert retry_pending_refunds(_hours_before(28), gateway) == []


def test_refund_is_marked_failed_when_attempts_run_out(app, factory, gateway):
    app.config["REFUND_MAX_ATTEMPTS"] = 2
    gateway.fail_refunds = True
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)
    cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)

    retry_pending_refunds(_hours_before(29), gateway)

    refund = Refund.query.one()
    assert refund.status == RefundStatus.FAILED
    assert refund.attempts == 2
    assert payment.status == PaymentStatus.COMPLETED
    # failed refunds no longer count against the cap and are not retried
    assert cancellation._reserved_refunds(payment) == Decimal("0.00")
    gateway.fail_refunds = False
    assert retry_pending_refunds(_hours_before(28), gateway) == []


def test_started_booking_cannot_be_cancelled(factory, gateway):
    booking = factory.booking(factory.court())

    with pytest.raises(PolicyError) as exc:
        cancel_booking(booking.id, booking.user_id, None, STARTS_AT + timedelta(minutes=5), gateway)
    assert exc.value.code == "BOOKING_STARTED"
    assert booking.status == BookingStatus.CONFIRMED


def test_cancelling_twice_is_an_invalid_state(factory, gateway):
    booking = factory.booking(factory.court(), status=BookingStatus.CANCELLED)

    with pytest.raises(InvalidStateError) as exc:
        cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)
    assert exc.value.code == "ALREADY_CANCELLED"
    assert exc.value.http_status == 409


def test_unknown_booking(app, gateway):
    with pytest.raises(NotFoundError):
        cancel_booking(777, 1, None, _hours_before(30), gateway)


def test_database_failure_rolls_back_cancellation(factory, gateway, monkeypatch):
    booking = factory.booking(factory.court())
    factory.payment(booking)

    def broken(*args, **kwargs):
        raise OperationalError("INSERT INTO refunds", {}, Exception("disk I/O error"))

    monkeypatch.setattr(cancellation, "apply_cancellation", broken)

    with pytest.raises(RefundError):
        cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)

    assert booking.status == BookingStatus.CONFIRMED
    assert Refund.query.count() == 0
    assert gateway.refunds == []


def test_preview_does_not_mutate(factory):
    booking = factory.booking(factory.court())
    factory.payment(booking)

    preview = preview_cancellation(booking.id, _hours_before(20))

    assert preview["decision"]["code"] == "PARTIAL_REFUND"
    assert preview["payment_made"] is True
    assert preview["refund_amount"] == "750.00"
    assert booking.status == BookingStatus.CONFIRMED
    assert Refund.query.count() == 0


def test_admin_cancel_refunds_in_full_inside_the_window(factory, gateway):
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)

    outcome = admin_cancel_booking(booking.id, "Floodlights failed", _hours_before(2), gateway)

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.decision.code == "OWNER_OVERRIDE"
    assert outcome.refund.amount == Decimal("1500.00")
    assert payment.status == PaymentStatus.REFUNDED


def test_refunds_never_exceed_payment(factory, gateway):
    booking = factory.booking(factory.court())
    payment = factory.payment(booking)
    db.session.add(Refund(
        payment=payment,
        booking_id=booking.id,
        amount=Decimal("1200.00"),
        percentage=80,
        status=RefundStatus.COMPLETED,
    ))
    db.session.commit()

    outcome = cancel_booking(booking.id, booking.user_id, None, _hours_before(30), gateway)

    assert outcome.refund.amount == Decimal("300.00")
    assert payment.refunded_total == Decimal("1500.00")
    assert payment.status == PaymentStatus.REFUNDED
