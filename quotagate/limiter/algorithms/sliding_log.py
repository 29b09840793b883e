"""Sliding window log.

Exact: every admitted permit is stored as a timestamp, so no sliding window
of ``window_duration`` seconds ever holds more than ``capacity`` admits.
Memory and time per check are proportional to the window's contents.

A request of cost N appends N entries at ``now``.
"""

from bisect import bisect_right

from quotagate.limiter.algorithms.base import AlgorithmStrategy, ceil_ms
from quotagate.limiter.models import AlgorithmResult, QuotaPolicy, SlidingLogState


class SlidingLogStrategy(AlgorithmStrategy):
    """Admission log trimmed to the last ``window_duration`` seconds."""

    def initial_state(self, policy: QuotaPolicy, now: float) -> SlidingLogState:
        return SlidingLogState(timestamps=())

    @staticmethod
    def _live_entries(state: SlidingLogState, now: float, window: float) -> tuple[float, ...]:
        # An entry expires once now - ts >= window, i.e. ts <= now - window.
        cutoff = bisect_right(state.timestamps, now - window)
        return state.timestamps[cutoff:]

    def decide(
        self,
        state: SlidingLogState,
        now: float,
        policy: QuotaPolicy,
        cost: int,
    ) -> AlgorithmResult:
        rejected = self.reject_oversized(state, policy, cost)
        if rejected is not None:
            return rejected

        window = policy.window_duration
        live = self._live_entries(state, now, window)

        if len(live) + cost <= policy.capacity:
            # Keep the log sorted even if the clock stepped backwards.
            appended = (max(now, live[-1]) if live else now,) * cost
            new_log = live + appended
            return AlgorithmResult(
                allowed=True,
                new_state=SlidingLogState(timestamps=new_log),
                retry_after=None,
                remaining=policy.capacity - len(new_log),
                reset_after=ceil_ms(new_log[-1] + window - now),
            )

        # The (excess)-th oldest entry has to leave the window first.
        excess = len(live) + cost - policy.capacity
        retry_after = ceil_ms(live[excess - 1] + window - now)
        return AlgorithmResult(
            allowed=False,
            new_state=SlidingLogState(timestamps=live),
            retry_after=retry_after,
            remaining=max(0, policy.capacity - len(live)),
            reset_after=ceil_ms(live[-1] + window - now),
        )
