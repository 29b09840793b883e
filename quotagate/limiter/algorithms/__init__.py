"""Rate limiting algorithm strategies.

Each strategy is a stateless, pure decision function; all per-key state
lives in a counter store.
"""

from quotagate.limiter.algorithms.base import AlgorithmStrategy, ceil_ms
from quotagate.limiter.algorithms.fixed_window import FixedWindowStrategy
from quotagate.limiter.algorithms.leaky_bucket import LeakyBucketStrategy
from quotagate.limiter.algorithms.sliding_counter import SlidingCounterStrategy
from quotagate.limiter.algorithms.sliding_log import SlidingLogStrategy
from quotagate.limiter.algorithms.token_bucket import TokenBucketStrategy
from quotagate.limiter.models import Algorithm

__all__ = [
    "AlgorithmStrategy",
    "FixedWindowStrategy",
    "SlidingLogStrategy",
    "SlidingCounterStrategy",
    "TokenBucketStrategy",
    "LeakyBucketStrategy",
    "ceil_ms",
    "get_strategy",
]

_STRATEGIES: dict[Algorithm, AlgorithmStrategy] = {
    Algorithm.FIXED_WINDOW: FixedWindowStrategy(),
    Algorithm.SLIDING_LOG: SlidingLogStrategy(),
    Algorithm.SLIDING_COUNTER: SlidingCounterStrategy(),
    Algorithm.TOKEN_BUCKET: TokenBucketStrategy(),
    Algorithm.LEAKY_BUCKET: LeakyBucketStrategy(),
}


def get_strategy(algorithm: Algorithm) -> AlgorithmStrategy:
    """Return the strategy implementing ``algorithm``."""
    return _STRATEGIES[Algorithm(algorithm)]
