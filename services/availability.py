"""Bookable slot grid for a court/date and its availability annotation."""
from flask import current_app

from models.booking import Booking, BookingStatus
from models.court import Court
from models.slot import TimeSlot
from services.errors import ConfigurationError, NotFoundError, PolicyError
from services.timeutils import TimeRange, minute_of_day, parse_time

STATUS_AVAILABLE = "available"
STATUS_BOOKED = "booked"
STATUS_BLOCKED = "blocked"
STATUS_PAST = "past"

SLOT_STATUSES = (STATUS_AVAILABLE, STATUS_BOOKED, STATUS_BLOCKED, STATUS_PAST)


def _minutes(value):
    return parse_time(value) if isinstance(value, str) else int(value)


def generate_slots(opening, closing, granularity: int = 60) -> list:
    """Split ``[opening, closing)`` into consecutive slots of ``granularity`` minutes.

    The grid has no gaps or overlaps; when the span is not a multiple of the
    granularity the last slot is cut short at closing time.
    """
    open_min = _minutes(opening)
    close_min = _minutes(closing)
    if granularity <= 0:
        raise ConfigurationError(
            "Slot granularity must be positive",
            code="INVALID_GRANULARITY",
            granularity=granularity,
        )
    if close_min <= open_min:
        raise ConfigurationError(
            "Closing time must be after opening time",
            code="INVALID_OPERATING_HOURS",
            opening_time=opening,
            closing_time=closing,
        )

    slots = []
    cursor = open_min
    while cursor < close_min:
        slots.append(TimeRange(cursor, min(cursor + granularity, close_min)))
        cursor += granularity
    return slots


def get_court(court_id: int) -> Court:
    court = Court.query.get(court_id)
    if not court:
        raise NotFoundError("Court not found", code="COURT_NOT_FOUND", court_id=court_id)
    return court


def active_bookings(court_id: int, day) -> list:
    return (
        Booking.query
        .filter(
            Booking.court_id == court_id,
            Booking.booking_date == day,
            Booking.status.in_(BookingStatus.ACTIVE),
        )
        .order_by(Booking.start_time.asc())
        .all()
    )


def blocked_slots(court_id: int, day) -> list:
    return (
        TimeSlot.query
        .filter_by(court_id=court_id, slot_date=day, is_blocked=True)
        .order_by(TimeSlot.start_time.asc())
        .all()
    )


def annotate_slots(slots, bookings, blocks, day, now) -> list:
    """Give every slot exactly one status: past > booked > blocked > available.

    ``is_booked`` is reported separately so a slot that already started still
    shows whether a booking holds it.
    """
    today = now.date()
    now_minute = minute_of_day(now)

    out = []
    for slot in slots:
        is_past = day < today or (day == today and slot.start <= now_minute)
        is_booked = any(slot.overlaps(b.time_range) for b in bookings)
        block = next((b for b in blocks if slot.overlaps(b.time_range)), None)

        status, reason = STATUS_AVAILABLE, None
        if is_past:
            status, reason = STATUS_PAST, "This time slot has already passed"
        elif is_booked:
            status, reason = STATUS_BOOKED, "Already booked"
        elif block is not None:
            status, reason = STATUS_BLOCKED, block.block_reason or "Not available"

        entry = slot.to_dict()
        entry["status"] = status
        entry["is_booked"] = is_booked
        if reason:
            entry["reason"] = reason
        out.append(entry)
    return out


def court_availability(court_id: int, day, now) -> dict:
    court = get_court(court_id)
    if not court.is_active:
        raise PolicyError(
            "Court is not available for booking",
            code="COURT_INACTIVE",
            court_id=court_id,
        )

    granularity = current_app.config.get("SLOT_GRANULARITY_MINUTES", 60)
    slots = generate_slots(court.opening_time, court.closing_time, granularity)
    annotated = annotate_slots(
        slots,
        active_bookings(court.id, day),
        blocked_slots(court.id, day),
        day,
        now,
    )

    summary = {"total": len(annotated)}
    for status in SLOT_STATUSES:
        summary[status] = sum(1 for s in annotated if s["status"] == status)

    return {
        "court": {
            "id": court.id,
            "name": court.name,
            "sport_type": court.sport_type,
            "price_per_hour": str(court.price_per_hour),
            "facility_id": court.facility_id,
        },
        "date": day.isoformat(),
        "operating_hours": {"opening": court.opening_time, "closing": court.closing_time},
        "slots": annotated,
        "summary": summary,
    }


def overlapping_bookings(court_id: int, day, rng: TimeRange) -> list:
    return [b for b in active_bookings(court_id, day) if rng.overlaps(b.time_range)]


def overlapping_blocks(court_id: int, day, rng: TimeRange) -> list:
    return [s for s in blocked_slots(court_id, day) if rng.overlaps(s.time_range)]
