from datetime import date, datetime

import pytest

from services.errors import ValidationError
from services.timeutils import (
    TimeRange,
    booking_start,
    format_time,
    overlaps,
    parse_date,
    parse_time,
    validate_range,
)


@pytest.mark.parametrize("value, minutes", [
    ("00:00", 0),
    ("06:00", 360),
    ("9:30", 570),
    ("23:59", 1439),
    (" 10:15 ", 615),
])
def test_parse_time(value, minutes):
    assert parse_time(value) == minutes


@pytest.mark.parametrize("value", ["24:00", "10:60", "1030", "ten", "", None, 600])
def test_parse_time_rejects_malformed(value):
    with pytest.raises(ValidationError) as exc:
        parse_time(value)
    assert exc.value.code == "INVALID_TIME"


def test_format_time_is_zero_padded():
    assert format_time(570) == "09:30"
    assert format_time(0) == "00:00"
    assert format_time(parse_time("7:05")) == "07:05"


def test_parse_date():
    assert parse_date("2026-03-12") == date(2026, 3, 12)
    for bad in ("2026-02-30", "12/03/2026", "", None):
        with pytest.raises(ValidationError):
            parse_date(bad)


def test_touching_ranges_do_not_overlap():
    morning = TimeRange.from_strings("10:00", "11:00")
    later = TimeRange.from_strings("11:00", "12:00")
    assert not morning.overlaps(later)
    assert not later.overlaps(morning)


def test_overlap_is_symmetric():
    ranges = [
        TimeRange.from_strings(a, b)
        for a, b in [("06:00", "07:00"), ("06:30", "08:00"), ("07:00", "07:30"),
                     ("05:00", "10:00"), ("09:59", "10:01"), ("10:00", "10:15")]
    ]
    for a in ranges:
        for b in ranges:
            assert a.overlaps(b) == b.overlaps(a) == overlaps(a, b)


def test_containment_counts_as_overlap():
    outer = TimeRange.from_strings("08:00", "12:00")
    inner = TimeRange.from_strings("09:00", "10:00")
    assert outer.overlaps(inner)
    assert outer.contains(inner)
    assert not inner.contains(outer)


def test_validate_range():
    rng = validate_range("10:00", "11:30")
    assert rng.duration == 90
    assert rng.to_dict() == {"start_time": "10:00", "end_time": "11:30"}

    with pytest.raises(ValidationError) as exc:
        validate_range("11:00", "10:00")
    assert exc.value.code == "INVALID_RANGE"

    with pytest.raises(ValidationError) as exc:
        validate_range("10:00", "10:10", min_minutes=15)
    assert exc.value.code == "RANGE_TOO_SHORT"


def test_booking_start_is_naive_wall_clock():
    assert booking_start(date(2026, 3, 12), "14:30") == datetime(2026, 3, 12, 14, 30)
