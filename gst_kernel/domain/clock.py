"""
Injectable clocks.

Services never call ``datetime.now()`` or ``date.today()``. They hold a
``Clock`` and pass ``clock.today()`` to the engines as ``as_of``; engines
take that date as an argument and never read time themselves.

GST deadlines (the 20th-of-month payment date, the 30-day self-invoice
window, the Section 16(4) time bar) fall on Indian calendar days, so
``today()`` is the date in IST even though ``now()`` stays in UTC. A
payment made at 01:00 IST on the 21st is late, although it is still the
20th in UTC.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30), "IST")


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current instant."""

    def today(self) -> date:
        """Calendar date in India for ``now()``."""
        return self.now().astimezone(IST).date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock for tests and replays.

    ``now()`` is stable between calls and only moves when the test moves it.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = instant

    def set_date(self, day: date) -> None:
        """Move to noon IST on ``day``."""
        self._current = datetime.combine(day, time(12, 0), tzinfo=IST).astimezone(timezone.utc)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Advance one second and return the new instant."""
        self.advance(1)
        return self._current
