"""Fixed window counter.

A window opens at the first check after the previous one ended. Up to
2 x capacity requests can be admitted around a window boundary; that burst
is a property of the algorithm and is kept.
"""

from quotagate.limiter.algorithms.base import AlgorithmStrategy, ceil_ms, elapsed
from quotagate.limiter.models import AlgorithmResult, FixedWindowState, QuotaPolicy


class FixedWindowStrategy(AlgorithmStrategy):
    """Count permits per fixed window of ``window_duration`` seconds."""

    def initial_state(self, policy: QuotaPolicy, now: float) -> FixedWindowState:
        return FixedWindowState(count=0, window_start=now)

    def decide(
        self,
        state: FixedWindowState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        rejected = self.reject_oversized(state, policy, cost)
        if rejected is not None:
            return rejected

        if elapsed(now, state.window_start) >= policy.window_duration:
            state = FixedWindowState(count=0, window_start=now)

        reset_after = ceil_ms(policy.window_duration - elapsed(now, state.window_start))

        if state.count + cost <= policy.capacity:
            new_state = FixedWindowState(count=state.count + cost, window_start=state.window_start)
            return AlgorithmResult(
                allowed=True,
                new_state=new_state,
                retry_after=None,
                remaining=policy.capacity - new_state.count,
                reset_after=reset_after,
            )

        return AlgorithmResult(
            allowed=False,
            new_state=state,
            retry_after=reset_after,
            remaining=max(0, policy.capacity - state.count),
            reset_after=reset_after,
        )
