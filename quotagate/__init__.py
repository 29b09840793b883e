"""quotagate: multi-algorithm rate limiting and admission control."""

from quotagate.exceptions import (
    BackendUnavailable,
    InvalidCost,
    InvalidKey,
    PolicyError,
    QuotaGateException,
    StateDecodeError,
    TooMuchContention,
)
from quotagate.limiter import (
    Algorithm,
    BackendErrorPolicy,
    Decision,
    InMemoryCounterStore,
    QuotaPolicy,
    RateLimiter,
    RedisCounterStore,
    build_rate_limiter,
)

__version__ = "0.1.0"

__all__ = [
    "Algorithm",
    "BackendErrorPolicy",
    "Decision",
    "InMemoryCounterStore",
    "QuotaPolicy",
    "RateLimiter",
    "RedisCounterStore",
    "build_rate_limiter",
    "QuotaGateException",
    "BackendUnavailable",
    "TooMuchContention",
    "InvalidCost",
    "InvalidKey",
    "StateDecodeError",
    "PolicyError",
]
