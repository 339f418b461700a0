"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that services and the reaper
    never call ``datetime.now()`` directly.  Hold expiry is pure arithmetic on
    ``clock.now()``, which lets tests move time past ``expires_at`` without
    sleeping.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import Lock


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - Safe to share between threads (concurrency tests advance it while
          worker threads read it).
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta()
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        with self._lock:
            self._fixed_time = time
            self._offset = timedelta()

    def advance(self, seconds: float = 0, *, minutes: float = 0) -> None:
        """Advance the clock by the given seconds and/or minutes."""
        with self._lock:
            self._offset += timedelta(seconds=seconds, minutes=minutes)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
