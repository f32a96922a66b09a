"""Owner-side maintenance blocks on court time ranges."""
from datetime import timedelta
from typing import NamedTuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.court_day_lock import CourtDayLock
from models.slot import TimeSlot
from services.availability import get_court, overlapping_bookings
from services.cancellation import override_cancel, settle_refund
from services.errors import BookingError, ValidationError
from services.timeutils import TimeRange, format_time, parse_date, parse_time, validate_range

BLOCK_TYPES = ("maintenance", "renovation", "event", "emergency", "other")
REASON_MIN_LEN = 5
REASON_MAX_LEN = 200


class BlockResult(NamedTuple):
    blocked: list
    conflicts: list
    cancelled: list
    refunds: list

    def to_dict(self):
        return {
            "blocked": [s.to_dict() for s in self.blocked],
            "conflicts": self.conflicts,
            "cancelled": [b.to_dict() for b in self.cancelled],
            "refunds": [r.to_dict() for r in self.refunds],
        }


def _dates(values) -> list:
    if not isinstance(values, (list, tuple)) or not values:
        raise ValidationError("dates must be a non-empty list of YYYY-MM-DD dates", code="INVALID_DATES")
    return sorted({v if hasattr(v, "isoformat") else parse_date(v) for v in values})


def _ranges(values, min_minutes: int, hours: TimeRange) -> list:
    if not isinstance(values, (list, tuple)) or not values:
        raise ValidationError("time_slots must be a non-empty list", code="INVALID_RANGES")
    out = []
    for item in values:
        if not isinstance(item, dict):
            raise ValidationError("Each time slot needs start_time and end_time", code="INVALID_RANGES")
        rng = validate_range(item.get("start_time"), item.get("end_time"), min_minutes)
        if not hours.contains(rng):
            raise ValidationError(
                "Blocked time is outside operating hours",
                code="OUTSIDE_OPERATING_HOURS",
                operating_hours={"opening": hours.start_str, "closing": hours.end_str},
                requested=rng.to_dict(),
            )
        out.append(rng)
    return out


def _check_reason(reason, block_type):
    reason = (reason or "").strip()
    if not REASON_MIN_LEN <= len(reason) <= REASON_MAX_LEN:
        raise ValidationError(
            f"Reason must be {REASON_MIN_LEN}-{REASON_MAX_LEN} characters",
            code="INVALID_REASON",
        )
    if block_type not in BLOCK_TYPES:
        raise ValidationError(
            "Unknown block type",
            code="INVALID_BLOCK_TYPE",
            allowed=list(BLOCK_TYPES),
        )
    return reason


def _upsert_block(court_id, day, rng, stored_reason) -> TimeSlot:
    slot = TimeSlot.query.filter_by(court_id=court_id, slot_date=day, start_time=rng.start_str).first()
    if slot is None:
        slot = TimeSlot(court_id=court_id, slot_date=day, start_time=rng.start_str, end_time=rng.end_str)
        db.session.add(slot)
    elif not slot.is_blocked or parse_time(slot.end_time) < rng.end:
        # an active block never shrinks
        slot.end_time = rng.end_str
    slot.is_blocked = True
    slot.block_reason = stored_reason
    return slot


def block_slots(
    court_id: int,
    dates,
    time_ranges,
    reason: str,
    allow_override: bool = False,
    block_type: str = "maintenance",
    now=None,
    gateway=None,
) -> BlockResult:
    """Block every (date, range) pair that is free, or that may be overridden.

    Pairs overlapping active bookings are reported in ``conflicts`` and left
    unblocked unless ``allow_override`` is set, in which case those bookings
    are cancelled with a full refund of any completed payment.
    """
    court = get_court(court_id)
    reason = _check_reason(reason, block_type)
    days = _dates(dates)
    hours = TimeRange.from_strings(court.opening_time, court.closing_time)
    ranges = _ranges(time_ranges, current_app.config.get("MIN_BOOKING_MINUTES", 15), hours)
    stored_reason = f"{block_type}: {reason}"

    blocked, conflicts, cancelled, refunds = [], [], [], []
    try:
        # days are sorted so concurrent blockers take locks in the same order
        for day in days:
            CourtDayLock.acquire(court.id, day)
            for rng in ranges:
                clashing = overlapping_bookings(court.id, day, rng)
                if clashing and not allow_override:
                    conflicts.append({
                        "date": day.isoformat(),
                        "start_time": rng.start_str,
                        "end_time": rng.end_str,
                        "bookings": [b.to_dict() for b in clashing],
                    })
                    continue

                for booking in clashing:
                    refund = override_cancel(booking, now, f"Court {block_type}: {reason}")
                    cancelled.append(booking)
                    if refund is not None:
                        refunds.append(refund)

                blocked.append(_upsert_block(court.id, day, rng, stored_reason))
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Blocking slots on court %s failed", court_id)
        raise

    for refund in refunds:
        settle_refund(refund, gateway, now)

    current_app.logger.info(
        "Court %s: blocked %s slots, %s conflicts, %s bookings cancelled",
        court.id, len(blocked), len(conflicts), len(cancelled),
    )
    return BlockResult(blocked, conflicts, cancelled, refunds)


def unblock_slots(court_id: int, dates, time_ranges=None, reason: str = None) -> int:
    """Clear the blocked flag; all blocks of ``dates`` when no ranges are given.

    Cancelled bookings stay cancelled. Unblocking nothing returns 0.
    """
    court = get_court(court_id)
    days = _dates(dates)

    q = TimeSlot.query.filter(
        TimeSlot.court_id == court.id,
        TimeSlot.slot_date.in_(days),
        TimeSlot.is_blocked.is_(True),
    )
    if time_ranges:
        starts = []
        for item in time_ranges:
            if not isinstance(item, dict):
                raise ValidationError("Each time slot needs a start_time", code="INVALID_RANGES")
            starts.append(format_time(parse_time(item.get("start_time"))))
        q = q.filter(TimeSlot.start_time.in_(starts))

    rows = q.all()
    for slot in rows:
        slot.is_blocked = False
        slot.block_reason = f"Unblocked: {reason}" if reason else None
    db.session.commit()

    current_app.logger.info("Court %s: unblocked %s slots", court.id, len(rows))
    return len(rows)


def list_blocked_slots(court_id: int, today, start_date=None, end_date=None) -> list:
    court = get_court(court_id)
    window = current_app.config.get("BLOCKED_SLOTS_WINDOW_DAYS", 30)
    start = start_date or today
    end = end_date or (start + timedelta(days=window))
    if end < start:
        raise ValidationError("end_date must not be before start_date", code="INVALID_DATE_RANGE")

    return (
        TimeSlot.query
        .filter(
            TimeSlot.court_id == court.id,
            TimeSlot.is_blocked.is_(True),
            TimeSlot.slot_date >= start,
            TimeSlot.slot_date <= end,
        )
        .order_by(TimeSlot.slot_date.asc(), TimeSlot.start_time.asc())
        .all()
    )
