"""Court-local wall-clock helpers.

Times of day are integer minute offsets (0-1439) and ranges are half-open
``[start, end)``: a range ending at 10:00 never overlaps one starting at
10:00. ``TimeRange.overlaps`` is the only overlap test used anywhere in the
booking code.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from services.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_time(value) -> int:
    """Convert "HH:MM" into a minute-of-day offset."""
    if not isinstance(value, str):
        raise ValidationError("Time must be a string in HH:MM format", code="INVALID_TIME", value=value)
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValidationError("Time must be in HH:MM format", code="INVALID_TIME", value=value)
    hours, minutes = int(match.group(1)), int(match.group(2))
    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"minute offset out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value) -> date:
    """Parse a YYYY-MM-DD calendar date."""
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ValidationError("Date must be in YYYY-MM-DD format", code="INVALID_DATE", value=value)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError("Invalid calendar date", code="INVALID_DATE", value=value)


class TimeRange(NamedTuple):
    start: int
    end: int

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeRange":
        return cls(parse_time(start), parse_time(end))

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_str(self) -> str:
        return format_time(self.start)

    @property
    def end_str(self) -> str:
        return format_time(self.end)

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self):
        return {"start_time": self.start_str, "end_time": self.end_str}


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.overlaps(b)


def validate_range(start: str, end: str, min_minutes: int = 15) -> TimeRange:
    """Parse and check ordering and minimum duration of a requested range."""
    rng = TimeRange.from_strings(start, end)
    if rng.end <= rng.start:
        raise ValidationError(
            "End time must be after start time",
            code="INVALID_RANGE",
            start_time=start,
            end_time=end,
        )
    if rng.duration < min_minutes:
        raise ValidationError(
            f"Time range must be at least {min_minutes} minutes long",
            code="RANGE_TOO_SHORT",
            start_time=start,
            end_time=end,
        )
    return rng


def booking_start(day: date, start: str) -> datetime:
    # Naive local wall clock: venue timezones are not modelled.
    return datetime.combine(day, time()) + timedelta(minutes=parse_time(start))


def booking_end(day: date, end: str) -> datetime:
    return datetime.combine(day, time()) + timedelta(minutes=parse_time(end))


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute
