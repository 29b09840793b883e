"""Leaky bucket (as a meter).

Admitted requests fill the bucket by their cost and it drains at
``leak_rate`` slots per second. Requests are never queued: a request that
does not fit is denied immediately with the time until enough has drained.
"""

from quotagate.limiter.algorithms.base import AlgorithmStrategy, ceil_ms, elapsed, whole
from quotagate.limiter.models import AlgorithmResult, LeakyBucketState, QuotaPolicy


class LeakyBucketStrategy(AlgorithmStrategy):
    """Bucket of ``capacity`` slots draining ``leak_rate`` slots per second."""

    def initial_state(self, policy: QuotaPolicy, now: float) -> LeakyBucketState:
        return LeakyBucketState(queue_depth=0, last_leak=now)

    @staticmethod
    def leak(state: LeakyBucketState, now: float, policy: QuotaPolicy) -> LeakyBucketState:
        """Drain whole slots; the partial slot in progress carries over."""
        leaked = whole(elapsed(now, state.last_leak) * policy.leak_rate)
        if state.queue_depth - leaked <= 0:
            return LeakyBucketState(queue_depth=0, last_leak=now)
        if leaked <= 0:
            return state
        return LeakyBucketState(
            queue_depth=state.queue_depth - leaked,
            last_leak=state.last_leak + leaked / policy.leak_rate,
        )

    @staticmethod
    def _time_to_drain(slots: int, state: LeakyBucketState, now: float, policy: QuotaPolicy) -> float:
        if slots <= 0:
            return 0.0
        return ceil_ms(slots / policy.leak_rate - elapsed(now, state.last_leak))

    def decide(
        self,
        state: LeakyBucketState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        rejected = self.reject_oversized(state, policy, cost)
        if rejected is not None:
            return rejected

        state = self.leak(state, now, policy)

        if state.queue_depth + cost <= policy.capacity:
            new_state = LeakyBucketState(queue_depth=state.queue_depth + cost, last_leak=state.last_leak)
            return AlgorithmResult(
                allowed=True,
                new_state=new_state,
                retry_after=None,
                remaining=policy.capacity - new_state.queue_depth,
                reset_after=self._time_to_drain(new_state.queue_depth, new_state, now, policy),
            )

        overflow = state.queue_depth + cost - policy.capacity
        return AlgorithmResult(
            allowed=False,
            new_state=state,
            retry_after=self._time_to_drain(overflow, state, now, policy),
            remaining=policy.capacity - state.queue_depth,
            reset_after=self._time_to_drain(state.queue_depth, state, now, policy),
        )
