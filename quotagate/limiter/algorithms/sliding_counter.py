"""Sliding window counter.

Approximates a sliding window with two fixed-window counts: the previous
window's count is weighted by how much of it still overlaps the sliding
window. O(1) memory; may admit slightly more or fewer than ``capacity`` for
uneven traffic.
"""

import math

from quotagate.limiter.algorithms.base import AlgorithmStrategy, ceil_ms, elapsed, whole
from quotagate.limiter.models import AlgorithmResult, QuotaPolicy, SlidingCounterState


class SlidingCounterStrategy(AlgorithmStrategy):
    """Weighted previous + current window estimate."""

    def initial_state(self, policy: QuotaPolicy, now: float) -> SlidingCounterState:
        return SlidingCounterState(
            prev_count=0,
            prev_window_start=now - policy.window_duration,
            curr_count=0,
            curr_window_start=now,
        )

    @staticmethod
    def _roll(state: SlidingCounterState, now: float, window: float) -> SlidingCounterState:
        periods = whole(elapsed(now, state.curr_window_start) / window)
        if periods <= 0:
            return state
        new_start = state.curr_window_start + periods * window
        if periods == 1:
            return SlidingCounterState(
                prev_count=state.curr_count,
                prev_window_start=state.curr_window_start,
                curr_count=0,
                curr_window_start=new_start,
            )
        return SlidingCounterState(
            prev_count=0,
            prev_window_start=new_start - window,
            curr_count=0,
            curr_window_start=new_start,
        )

    @staticmethod
    def _estimate(state: SlidingCounterState, now: float, window: float) -> float:
        into_window = min(elapsed(now, state.curr_window_start), window)
        return state.prev_count * (window - into_window) / window + state.curr_count

    @staticmethod
    def _retry_after(
        state: SlidingCounterState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> float:
        """Earliest wait after which ``estimate + cost <= capacity``."""
        window = policy.window_duration
        into_window = min(elapsed(now, state.curr_window_start), window)
        until_roll = window - into_window
        budget = policy.capacity - cost

        if state.curr_count <= budget:
            # Only the previous window's weight has to decay.
            # prev * (until_roll - t) / window <= budget - curr
            wait = until_roll - (budget - state.curr_count) * window / state.prev_count
            return ceil_ms(wait)

        # After the roll the current count becomes the decaying previous one.
        # curr * (window - t) / window <= budget
        wait_after_roll = window * (1 - budget / state.curr_count)
        return ceil_ms(until_roll + wait_after_roll)

    @staticmethod
    def _reset_after(state: SlidingCounterState, now: float, window: float) -> float:
        until_roll = window - min(elapsed(now, state.curr_window_start), window)
        if state.curr_count > 0:
            return ceil_ms(until_roll + window)
        if state.prev_count > 0:
            return ceil_ms(until_roll)
        return 0.0

    def decide(
        self,
        state: SlidingCounterState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        rejected = self.reject_oversized(state, policy, cost)
        if rejected is not None:
            return rejected

        window = policy.window_duration
        state = self._roll(state, now, window)
        estimate = self._estimate(state, now, window)

        if estimate + cost <= policy.capacity:
            new_state = SlidingCounterState(
                prev_count=state.prev_count,
                prev_window_start=state.prev_window_start,
                curr_count=state.curr_count + cost,
                curr_window_start=state.curr_window_start,
            )
            return AlgorithmResult(
                allowed=True,
                new_state=new_state,
                retry_after=None,
                remaining=max(0, math.floor(policy.capacity - estimate - cost)),
                reset_after=self._reset_after(new_state, now, window),
            )

        return AlgorithmResult(
            allowed=False,
            new_state=state,
            retry_after=self._retry_after(state, now, policy, cost),
            remaining=max(0, math.floor(policy.capacity - estimate)),
            reset_after=self._reset_after(state, now, window),
        )
