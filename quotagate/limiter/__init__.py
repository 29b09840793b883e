"""Rate limiting for admission control.

Supports fixed window, sliding log, sliding counter, token bucket and leaky
bucket algorithms, with in-memory and Redis counter stores.
"""

# Re-export models
from quotagate.limiter.models import (
    AlgorithmResult,
    Algorithm,
    BackendErrorPolicy,
    CounterState,
    Decision,
    FixedWindowState,
    LeakyBucketState,
    QuotaPolicy,
    SlidingCounterState,
    SlidingLogState,
    TokenBucketState,
)

# Re-export backends
from quotagate.limiter.backends import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)

from quotagate.limiter.algorithms import AlgorithmStrategy, get_strategy
from quotagate.limiter.factory import build_rate_limiter, build_store, start_state_sweeper
from quotagate.limiter.service import RateLimiter

__all__ = [
    # Models
    "Algorithm",
    "AlgorithmResult",
    "BackendErrorPolicy",
    "CounterState",
    "Decision",
    "QuotaPolicy",
    "FixedWindowState",
    "SlidingLogState",
    "SlidingCounterState",
    "TokenBucketState",
    "LeakyBucketState",
    # Backends
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    # Algorithms
    "AlgorithmStrategy",
    "get_strategy",
    # Main classes
    "RateLimiter",
    "build_rate_limiter",
    "build_store",
    "start_state_sweeper",
]
