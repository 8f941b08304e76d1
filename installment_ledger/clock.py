"""Injectable time sources.

Every component that needs "now" or "today" asks a clock instead of calling
``datetime.now()`` so periodic tasks and overdue aging can be driven from tests.
"""

from datetime import date, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current moment."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall-clock time of the running process."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Manually controlled clock.

    Parameters
    ----------
    current : datetime
        Initial moment returned by ``now()``.
    """

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def set(self, current: datetime) -> None:
        """Jump to an absolute moment."""
        self.current = current

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward and return the new moment."""
        self.current = self.current + delta
        return self.current
