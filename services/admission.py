"""Booking admission: validation, conflict detection and the PENDING insert.

The conflict check and the insert run in one transaction that first takes
the court/date lock row (``CourtDayLock``), so two overlapping requests for
the same court and date are linearised and at most one is admitted.
"""
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from models.booking import Booking, BookingStatus
from models.court_day_lock import CourtDayLock
from services.availability import get_court, overlapping_blocks, overlapping_bookings
from services.errors import (
    BookingError,
    ConcurrencyError,
    ConflictError,
    PolicyError,
    ValidationError,
)
from services.timeutils import TimeRange, booking_start, validate_range

CENTS = Decimal("0.01")

_LOCK_CONTENTION_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize",
    "lock timeout",
)


def calculate_amount(rng: TimeRange, price_per_hour) -> Decimal:
    """duration_hours x price_per_hour, rounded half-up to 2 decimals."""
    price = Decimal(str(price_per_hour))
    return (Decimal(rng.duration) * price / Decimal(60)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _is_lock_contention(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_CONTENTION_MARKERS)


def check_bookable(court, day, rng: TimeRange, now):
    """Steps that need no lock: court and facility state, operating hours, duration, not in the past."""
    if not court.is_active:
        raise PolicyError("Court is not available for booking", code="COURT_INACTIVE", court_id=court.id)

    facility = court.facility
    if facility is None or not facility.is_approved:
        raise PolicyError(
            "Facility is not approved for bookings",
            code="FACILITY_NOT_APPROVED",
            facility_status=facility.status if facility else None,
        )
    if not facility.is_active:
        raise PolicyError("Facility is not accepting bookings", code="FACILITY_INACTIVE", facility_id=facility.id)

    hours = TimeRange.from_strings(court.opening_time, court.closing_time)
    if not hours.contains(rng):
        raise ValidationError(
            "Booking time is outside operating hours",
            code="OUTSIDE_OPERATING_HOURS",
            operating_hours={"opening": court.opening_time, "closing": court.closing_time},
            requested=rng.to_dict(),
        )

    max_hours = current_app.config.get("MAX_BOOKING_HOURS", 8)
    if rng.duration > max_hours * 60:
        raise ValidationError(
            f"Booking cannot exceed {max_hours} hours",
            code="DURATION_TOO_LONG",
        )

    if booking_start(day, rng.start_str) <= now:
        raise ValidationError(
            "Booking date and time must be in the future",
            code="BOOKING_IN_PAST",
        )


def find_conflicts(court_id: int, day, rng: TimeRange) -> list:
    conflicts = [
        {"type": "booking", "booking_id": b.id, "start_time": b.start_time, "end_time": b.end_time}
        for b in overlapping_bookings(court_id, day, rng)
    ]
    conflicts.extend(
        {"type": "blocked", "start_time": s.start_time, "end_time": s.end_time, "reason": s.block_reason}
        for s in overlapping_blocks(court_id, day, rng)
    )
    return conflicts


def _admit_once(court_id, day, start_time, end_time, user_id, now) -> Booking:
    court = get_court(court_id)
    min_minutes = current_app.config.get("MIN_BOOKING_MINUTES", 15)
    rng = validate_range(start_time, end_time, min_minutes)
    check_bookable(court, day, rng, now)

    CourtDayLock.acquire(court.id, day)

    conflicts = find_conflicts(court.id, day, rng)
    if conflicts:
        raise ConflictError(
            "Time slot is not available",
            code="SLOT_UNAVAILABLE",
            hint="Check availability and choose a different time",
            conflicts=conflicts,
        )

    booking = Booking(
        user_id=user_id,
        court_id=court.id,
        booking_date=day,
        start_time=rng.start_str,
        end_time=rng.end_str,
        status=BookingStatus.PENDING,
        total_amount=calculate_amount(rng, court.price_per_hour),
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def admit_booking(court_id: int, day, start_time: str, end_time: str, user_id: int, now) -> Booking:
    """Admit a PENDING booking or raise a ``BookingError``.

    A writer that collides with a concurrent admission (lock row insert,
    partial unique index, lock timeout) is retried after re-validating
    availability, at most ``ADMISSION_RETRIES`` times, then gets
    ``ConcurrencyError``. A real overlap is reported as ``ConflictError``
    and never retried.
    """
    retries = current_app.config.get("ADMISSION_RETRIES", 1)
    attempt = 0
    while True:
        try:
            return _admit_once(court_id, day, start_time, end_time, user_id, now)
        except BookingError:
            db.session.rollback()
            raise
        except (IntegrityError, OperationalError) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and not _is_lock_contention(exc):
                raise
            if attempt >= retries:
                current_app.logger.warning(
                    "Admission lost race on court %s %s %s-%s after %s attempts",
                    court_id, day, start_time, end_time, attempt + 1,
                )
                raise ConcurrencyError(
                    "Time slot was just taken by another booking",
                    hint="Check availability and choose a different time",
                ) from exc
            attempt += 1
            current_app.logger.info(
                "Admission race on court %s %s, re-validating (attempt %s)", court_id, day, attempt + 1
            )
