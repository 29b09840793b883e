"""Time sources for the rate limiter.

Algorithms never read the clock themselves; the facade samples a Clock once
per decision and passes ``now`` explicitly, so tests can drive synthetic time
without sleeping.
"""

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract time source returning seconds as a float."""

    @abstractmethod
    def now(self) -> float:
        """Return the current time in seconds."""
        pass


class SystemClock(Clock):
    """Wall-clock time (UNIX epoch seconds).

    Wall-clock rather than monotonic time is used so that every process
    sharing a distributed counter store agrees on timestamps.
    """

    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    """Settable clock for tests and simulations.

    Example:
        >>> clock = ManualClock(start=100.0)
        >>> clock.advance(1.5)
        >>> clock.now()
        101.5
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def set(self, value: float) -> None:
        """Jump to an absolute time."""
        with self._lock:
            self._now = float(value)

    def advance(self, seconds: float) -> None:
        """Move time forward.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError("ManualClock can only advance forward")
        with self._lock:
            self._now += seconds
