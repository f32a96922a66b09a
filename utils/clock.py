from datetime import datetime, timedelta

from flask import current_app

CLOCK_EXTENSION = "booking_clock"


class SystemClock:
    """Naive local wall clock, matching how booking start times are stored."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs):
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment


def get_clock():
    return current_app.extensions.get(CLOCK_EXTENSION) or SystemClock()


def now() -> datetime:
    return get_clock().now()
