"""Algorithm strategy interface and shared helpers."""

import math
from abc import ABC, abstractmethod
from typing import Optional

from quotagate.limiter.models import AlgorithmResult, CounterState, QuotaPolicy


def ceil_ms(seconds: float) -> float:
    """Round a duration up to the next millisecond, never below zero.

    Retry hints are rounded up so that retrying exactly at the hint is not
    early because of float error. The small epsilon keeps values that are
    already whole milliseconds (up to float noise) from being bumped.
    """
    if seconds <= 0:
        return 0.0
    return math.ceil(seconds * 1000.0 - 1e-6) / 1000.0


# Absorbs float noise such as 100.1 - 100.0 == 0.0999999999999943.
FLOOR_EPSILON = 1e-9


def whole(value: float) -> int:
    """Floor that tolerates float noise just below an integer."""
    return math.floor(value + FLOOR_EPSILON)


def elapsed(now: float, since: float) -> float:
    """Elapsed seconds, treating a clock that went backwards as no time."""
    return max(0.0, now - since)


class AlgorithmStrategy(ABC):
    """Pure decision logic for one rate limiting algorithm.

    Implementations do no I/O and hold no locks; concurrency safety comes
    from the counter store's compare-and-swap.
    """

    @abstractmethod
    def initial_state(self, policy: QuotaPolicy, now: float) -> CounterState:
        """State for a key seen for the first time: full quota, no history."""
        pass

    @abstractmethod
    def decide(
        self,
        state: CounterState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        """Decide whether ``cost`` permits can be taken at ``now``."""
        pass

    @staticmethod
    def reject_oversized(
        state: CounterState,
        policy: QuotaPolicy,
        cost: int,
    ) -> Optional[AlgorithmResult]:
        """Unconditional denial for requests larger than the whole quota."""
        if cost <= policy.capacity:
            return None
        return AlgorithmResult(
            allowed=False,
            new_state=state,
            retry_after=None,
            remaining=0,
            reset_after=0.0,
        )
