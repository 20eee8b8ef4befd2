"""
Injectable time source.

Services never read the wall clock themselves: ``created_at``,
``updated_at``, ``deleted_at``, allocation timestamps and the migrations
log all come from the Clock handed to ``LedgerDatabase``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its date part."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests and replays.

    Time only moves when told to, so two runs that write the same rows also
    write the same timestamps, and therefore export identical snapshots.
    """

    def __init__(self, start: datetime | None = None):
        start = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs an aware datetime")
        self._current = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current

    def set_time(self, when: datetime) -> None:
        self._current = when.astimezone(timezone.utc)
