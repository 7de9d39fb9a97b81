"""
Clock -- Injectable time abstraction.

Responsibility:
    Provides a clock interface so that the scheduler, the retry engine and the
    run state machine never call ``datetime.now()`` or ``time.sleep()``
    directly.  Window evaluation and backoff both go through the same
    instance, which is what makes window expiry during a backoff testable.

Architecture position:
    Kernel > Domain.  SystemClock is the one sanctioned I/O boundary for
    time; DeterministicClock never blocks.

Failure modes:
    - DeterministicClock.sleep rejects negative durations with ValueError.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Every service that needs the current time, or needs to wait, receives
        a Clock via constructor injection.

    Guarantees:
        - ``now()`` returns a ``datetime`` (timezone-aware for SystemClock).
        - ``sleep(seconds)`` returns after (at least) ``seconds`` of clock time.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Suspend for ``seconds`` of clock time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time and ``time.sleep``."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Contract:
        ``now()`` returns the same value on repeated calls until ``advance()``
        or ``sleep()`` is called.  ``sleep()`` never blocks: it
        advances the clock and records the requested duration in ``sleeps``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: Starting instant.  If None, uses a default epoch time.
        """
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds: float = 0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def sleep(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"sleep duration must be non-negative, got {seconds}")
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)
