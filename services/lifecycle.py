"""Booking status transitions.

PENDING -> CONFIRMED | CANCELLED, CONFIRMED -> CANCELLED | COMPLETED.
CANCELLED and COMPLETED are terminal.
"""
from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from services.errors import InvalidStateError, PolicyError

TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def transition(booking: Booking, target: str, now, reason: str = None) -> Booking:
    """Move ``booking`` to ``target`` and stamp the matching timestamp.

    Does not commit; the caller owns the transaction.
    """
    if not can_transition(booking.status, target):
        raise InvalidStateError(
            f"Cannot move booking from {booking.status} to {target}",
            code="INVALID_TRANSITION",
            booking_id=booking.id,
            current_status=booking.status,
            target_status=target,
        )

    if target == BookingStatus.COMPLETED and booking.ends_at > now:
        raise PolicyError(
            "Booking cannot be completed before its time window has elapsed",
            code="BOOKING_NOT_ELAPSED",
            booking_id=booking.id,
        )

    booking.status = target
    if target == BookingStatus.CONFIRMED:
        booking.confirmed_at = now
    elif target == BookingStatus.CANCELLED:
        booking.cancelled_at = now
        booking.cancel_reason = reason
    elif target == BookingStatus.COMPLETED:
        booking.completed_at = now
    return booking


def effective_status(booking: Booking, now) -> str:
    """Status as seen at ``now``; a confirmed booking whose window passed reads as COMPLETED."""
    if booking.status == BookingStatus.CONFIRMED and booking.ends_at <= now:
        return BookingStatus.COMPLETED
    return booking.status


def complete_elapsed_bookings(now) -> int:
    candidates = (
        Booking.query
        .filter(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.booking_date <= now.date(),
        )
        .all()
    )
    completed = 0
    for booking in candidates:
        if booking.ends_at <= now:
            transition(booking, BookingStatus.COMPLETED, now)
            completed += 1
    db.session.commit()

    current_app.logger.info("Marked %s elapsed bookings as completed", completed)
    return completed
