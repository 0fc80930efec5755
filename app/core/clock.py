# app/core/clock.py
# Injectable time source
#
# Every "now" comparison (subscription expiry, lateness, join/leave stamps)
# goes through a Clock so tests can pin time.
#   Production -> SystemClock (UTC wall clock)
#   Tests      -> FixedClock  (settable, advanceable)

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    A clock that only moves when told to.

    Naive datetimes passed in are treated as UTC.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = _as_utc(start or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = _as_utc(value)

    def advance(self, **delta) -> datetime:
        """advance(minutes=37) -- accepts timedelta keyword arguments."""
        self._now = self._now + timedelta(**delta)
        return self._now


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency -- override in tests with a FixedClock."""
    return system_clock
