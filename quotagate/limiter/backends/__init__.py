"""Counter store backends: in-process and Redis."""

from quotagate.limiter.backends.base import CounterStore
from quotagate.limiter.backends.memory import InMemoryCounterStore
from quotagate.limiter.backends.redis import RedisCounterStore

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
]
