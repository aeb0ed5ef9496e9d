"""
Injectable time source.

Services never read the wall clock themselves: semester ``created_at``,
payment ``date_paid``, expense dates and the settings ``updated_at`` stamp
all come from the Clock handed to the service.  All values are UTC-aware.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Opening morning of the first semester the test fixtures roll over to
DEFAULT_TEST_TIME = datetime(2025, 9, 1, 8, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` moves it, so two rollovers in one test can be ordered by
    ``created_at`` on purpose.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)
