"""Time-based cancellation and refund policy.

    >= 24h notice  -> 100% refund
    >= 12h notice  ->  50% refund
    <  12h notice  ->   0% refund
    started/passed -> cancellation not allowed
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

from flask import current_app

from models.booking import BookingStatus

CENTS = Decimal("0.01")


class CancellationDecision(NamedTuple):
    allowed: bool
    refund_percentage: int
    reason: str
    code: str
    hours_until_start: float = None

    def to_dict(self):
        return {
            "allowed": self.allowed,
            "refund_percentage": self.refund_percentage,
            "reason": self.reason,
            "code": self.code,
            "hours_until_start": round(self.hours_until_start, 2) if self.hours_until_start is not None else None,
        }


def policy_settings() -> dict:
    cfg = current_app.config
    return {
        "full_refund_hours": cfg.get("FULL_REFUND_NOTICE_HOURS", 24),
        "partial_refund_hours": cfg.get("PARTIAL_REFUND_NOTICE_HOURS", 12),
        "partial_refund_percent": cfg.get("PARTIAL_REFUND_PERCENT", 50),
    }


def evaluate_cancellation(
    booking,
    now,
    full_refund_hours: float = 24,
    partial_refund_hours: float = 12,
    partial_refund_percent: int = 50,
) -> CancellationDecision:
    if booking.status == BookingStatus.CANCELLED:
        return CancellationDecision(False, 0, "Booking is already cancelled", "ALREADY_CANCELLED")
    if booking.status == BookingStatus.COMPLETED:
        return CancellationDecision(False, 0, "Booking is already completed", "ALREADY_COMPLETED")

    starts_at = booking.starts_at
    if starts_at <= now:
        return CancellationDecision(
            False, 0, "Booking has already started or passed", "BOOKING_STARTED"
        )

    hours = (starts_at - now).total_seconds() / 3600
    if hours >= full_refund_hours:
        return CancellationDecision(
            True, 100, f"Full refund: cancelled {full_refund_hours}+ hours before start",
            "FULL_REFUND", hours,
        )
    if hours >= partial_refund_hours:
        return CancellationDecision(
            True, partial_refund_percent,
            f"Partial refund: cancelled {partial_refund_hours}-{full_refund_hours} hours before start",
            "PARTIAL_REFUND", hours,
        )
    return CancellationDecision(
        True, 0, f"No refund: cancelled less than {partial_refund_hours} hours before start",
        "NO_REFUND", hours,
    )


def compute_refund_amount(total_amount, percentage: int, paid_amount, already_refunded=0) -> Decimal:
    """Refund for ``percentage`` of the booking, capped by what is still refundable."""
    total = Decimal(str(total_amount))
    amount = (total * Decimal(percentage) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
    remaining = Decimal(str(paid_amount)) - Decimal(str(already_refunded))
    return max(min(amount, remaining), Decimal("0.00")).quantize(CENTS)
