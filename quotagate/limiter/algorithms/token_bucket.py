"""Token bucket.

Refill is accounted in whole intervals (floor). ``last_refill`` advances by
the intervals actually credited, so a partial interval carries over to the
next check instead of being lost when checks arrive faster than the refill
interval. A full bucket snaps ``last_refill`` to ``now`` so idle time cannot
be banked beyond capacity.
"""

import math

from quotagate.limiter.algorithms.base import FLOOR_EPSILON, AlgorithmStrategy, ceil_ms, elapsed, whole
from quotagate.limiter.models import AlgorithmResult, QuotaPolicy, TokenBucketState

# Token levels are rounded to this many decimals after every update, so
# summing fractional refill rates check after check cannot drift below a
# whole token (0.1 added ten times is 0.9999999999999999).
TOKEN_PRECISION = 9


class TokenBucketStrategy(AlgorithmStrategy):
    """Bucket of ``capacity`` tokens refilled by ``refill_rate`` per interval."""

    def initial_state(self, policy: QuotaPolicy, now: float) -> TokenBucketState:
        return TokenBucketState(tokens=float(policy.capacity), last_refill=now)

    @staticmethod
    def refill(state: TokenBucketState, now: float, policy: QuotaPolicy) -> TokenBucketState:
        """Credit whole elapsed intervals. Never removes tokens."""
        intervals = whole(elapsed(now, state.last_refill) / policy.refill_interval)
        if intervals <= 0:
            return state
        tokens = round(state.tokens + intervals * policy.refill_rate, TOKEN_PRECISION)
        if tokens >= policy.capacity:
            return TokenBucketState(tokens=float(policy.capacity), last_refill=now)
        return TokenBucketState(
            tokens=tokens,
            last_refill=state.last_refill + intervals * policy.refill_interval,
        )

    @staticmethod
    def _time_to(tokens_needed: float, state: TokenBucketState, now: float, policy: QuotaPolicy) -> float:
        if tokens_needed <= 0:
            return 0.0
        intervals = math.ceil(tokens_needed / policy.refill_rate - FLOOR_EPSILON)
        return ceil_ms(intervals * policy.refill_interval - elapsed(now, state.last_refill))

    def decide(
        self,
        state: TokenBucketState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        rejected = self.reject_oversized(state, policy, cost)
        if rejected is not None:
            return rejected

        state = self.refill(state, now, policy)

        if state.tokens + FLOOR_EPSILON >= cost:
            new_state = TokenBucketState(
                tokens=max(0.0, round(state.tokens - cost, TOKEN_PRECISION)),
                last_refill=state.last_refill,
            )
            return AlgorithmResult(
                allowed=True,
                new_state=new_state,
                retry_after=None,
                remaining=whole(new_state.tokens),
                reset_after=self._time_to(policy.capacity - new_state.tokens, new_state, now, policy),
            )

        return AlgorithmResult(
            allowed=False,
            new_state=state,
            retry_after=self._time_to(cost - state.tokens, state, now, policy),
            remaining=whole(state.tokens),
            reset_after=self._time_to(policy.capacity - state.tokens, state, now, policy),
        )
