"""Booking cancellation mechanics and refunds.

A cancellation commits the CANCELLED status together with a PENDING refund
row, then asks the gateway to pay the refund out. A gateway failure leaves
the refund PENDING with its failure recorded for a later retry; it is only
marked FAILED once the retry budget is spent.
"""
from decimal import Decimal
from typing import NamedTuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.booking import Booking, BookingStatus
from models.court_day_lock import CourtDayLock
from models.payment import Payment, PaymentStatus
from models.refund import Refund, RefundStatus
from services import lifecycle
from services.errors import (
    BookingError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    RefundError,
)
from services.refund_policy import (
    CancellationDecision,
    compute_refund_amount,
    evaluate_cancellation,
    policy_settings,
)

OVERRIDE_DECISION = CancellationDecision(
    True, 100, "Full refund: cancelled by the facility", "OWNER_OVERRIDE"
)


class CancellationOutcome(NamedTuple):
    booking: Booking
    decision: CancellationDecision
    refund: Refund = None


def get_booking(booking_id: int) -> Booking:
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND", booking_id=booking_id)
    return booking


def _reserved_refunds(payment: Payment) -> Decimal:
    return sum(
        (r.amount for r in payment.refunds if r.status in (RefundStatus.PENDING, RefundStatus.COMPLETED)),
        Decimal("0.00"),
    )


def refund_quote(booking: Booking, percentage: int):
    """(payment, amount) that a cancellation at ``percentage`` would refund."""
    payment = Payment.completed_for_booking(booking.id)
    if payment is None or percentage <= 0:
        return payment, Decimal("0.00")
    amount = compute_refund_amount(booking.total_amount, percentage, payment.amount, _reserved_refunds(payment))
    return payment, amount


def apply_cancellation(booking: Booking, now, reason: str, decision: CancellationDecision):
    """Cancel ``booking`` and stage its refund in the current transaction.

    The caller holds the court/date lock and commits. Returns the staged
    ``Refund`` or None when nothing is refundable (unpaid booking, 0%).
    """
    lifecycle.transition(booking, BookingStatus.CANCELLED, now, reason=reason)

    payment, amount = refund_quote(booking, decision.refund_percentage)
    if payment is None or amount <= 0:
        return None

    refund = Refund(
        payment=payment,
        booking_id=booking.id,
        amount=amount,
        percentage=decision.refund_percentage,
        reason=decision.reason,
        status=RefundStatus.PENDING,
    )
    db.session.add(refund)
    db.session.flush()
    return refund


def settle_refund(refund: Refund, gateway, now) -> Refund:
    """Pay a staged refund out through the gateway and record the result.

    A rejected attempt leaves the refund PENDING for ``retry_pending_refunds``
    until ``REFUND_MAX_ATTEMPTS`` is reached, then marks it FAILED.
    """
    payment = refund.payment
    refund.attempts = (refund.attempts or 0) + 1
    try:
        refund.gateway_refund_ref = gateway.process_refund(
            payment.gateway_payment_ref, refund.amount, refund.reason
        )
    except GatewayError as exc:
        refund.failure_reason = exc.message[:255]
        max_attempts = current_app.config.get("REFUND_MAX_ATTEMPTS", 5)
        if refund.attempts >= max_attempts:
            refund.status = RefundStatus.FAILED
            refund.processed_at = now
            db.session.commit()
            current_app.logger.error(
                "Refund %s for booking %s failed after %s attempts: %s",
                refund.id, refund.booking_id, refund.attempts, exc.message,
            )
            return refund
        db.session.commit()
        current_app.logger.warning(
            "Refund %s for booking %s left pending: %s", refund.id, refund.booking_id, exc.message
        )
        return refund

    refund.status = RefundStatus.COMPLETED
    refund.processed_at = now
    refund.failure_reason = None
    if payment.refunded_total >= payment.amount:
        payment.status = PaymentStatus.REFUNDED
    db.session.commit()

    current_app.logger.info("Refund %s of %s completed for booking %s", refund.id, refund.amount, refund.booking_id)
    return refund


def retry_pending_refunds(now, gateway, limit: int = 100) -> list:
    """Settle PENDING refunds again, oldest first. Returns the refunds tried."""
    rows = (
        Refund.query
        .filter(Refund.status == RefundStatus.PENDING)
        .order_by(Refund.created_at.asc(), Refund.id.asc())
        .limit(limit)
        .all()
    )
    for refund in rows:
        settle_refund(refund, gateway, now)

    if rows:
        settled = sum(1 for r in rows if r.status == RefundStatus.COMPLETED)
        current_app.logger.info("Retried %s pending refunds, %s completed", len(rows), settled)
    return rows


def _commit_cancellation(booking: Booking, now, reason: str, decide) -> CancellationOutcome:
    refund = None
    try:
        CourtDayLock.acquire(booking.court_id, booking.booking_date)
        db.session.refresh(booking)
        decision = decide(booking)
        refund = apply_cancellation(booking, now, reason, decision)
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Cancellation of booking %s failed", booking.id)
        raise RefundError(
            "Cancellation could not be recorded; booking left unchanged",
            booking_id=booking.id,
        ) from exc
    return CancellationOutcome(booking, decision, refund)


def cancel_booking(booking_id: int, requester_id: int, reason: str = None, now=None, gateway=None) -> CancellationOutcome:
    """User cancellation under the refund policy's time windows."""
    booking = get_booking(booking_id)
    settings = policy_settings()

    def decide(current):
        decision = evaluate_cancellation(current, now, **settings)
        if not decision.allowed:
            error_cls = PolicyError if decision.code == "BOOKING_STARTED" else InvalidStateError
            raise error_cls(decision.reason, code=decision.code, current_status=current.status)
        return decision

    outcome = _commit_cancellation(booking, now, reason, decide)
    current_app.logger.info(
        "Booking %s cancelled by user %s (%s)", booking.id, requester_id, outcome.decision.code
    )

    if outcome.refund is not None:
        settle_refund(outcome.refund, gateway, now)
    return outcome


def _override_decision(booking: Booking) -> CancellationDecision:
    if booking.status not in BookingStatus.ACTIVE:
        raise InvalidStateError(
            f"Cannot cancel a {booking.status.lower()} booking",
            code="INVALID_TRANSITION",
            booking_id=booking.id,
            current_status=booking.status,
        )
    return OVERRIDE_DECISION


def override_cancel(booking: Booking, now, reason: str):
    """Owner/admin cancellation: no time window, full refund of what was paid.

    Stages the change in the current transaction; the caller holds the
    court/date lock, commits, then settles the returned refund.
    """
    return apply_cancellation(booking, now, reason, _override_decision(booking))


def admin_cancel_booking(booking_id: int, reason: str, now, gateway) -> CancellationOutcome:
    booking = get_booking(booking_id)
    outcome = _commit_cancellation(booking, now, reason, _override_decision)
    if outcome.refund is not None:
        settle_refund(outcome.refund, gateway, now)
    return outcome


def preview_cancellation(booking_id: int, now) -> dict:
    booking = get_booking(booking_id)
    decision = evaluate_cancellation(booking, now, **policy_settings())
    payment, amount = refund_quote(booking, decision.refund_percentage if decision.allowed else 0)
    return {
        "booking_id": booking.id,
        "decision": decision.to_dict(),
        "payment_made": payment is not None,
        "refund_amount": str(amount),
    }
