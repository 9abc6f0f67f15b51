"""
Injectable time source.

Kernel services stamp closed_at, reopened_at, enqueued and applied times
from a ``Clock`` instead of calling ``datetime.now()``, so period and
queue histories are reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen at ``start`` (default 2025-07-01 12:00 UTC) until advanced."""

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2025, 7, 1, 12, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
