"""
Clock -- injectable time source.

Guards, engines and services never call ``datetime.now()`` directly; they
receive a Clock so that renewal windows, certificate expiry and cache
expiry can be tested at exact boundaries.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self):
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning the real system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 0, *, days: int = 0) -> None:
        """Advance the clock by the given seconds and days."""
        self._offset += timedelta(seconds=seconds, days=days)


# Himachal Pradesh keeps India Standard Time year-round.
IST = timezone(timedelta(hours=5, minutes=30), "IST")


def local_date(moment: datetime):
    """Calendar date of ``moment`` in India Standard Time."""
    return moment.astimezone(IST).date()
