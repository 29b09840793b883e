"""Construction of rate limiters from settings."""

from typing import TYPE_CHECKING, Any, Optional

from quotagate.core.clock import Clock, SystemClock
from quotagate.core.logging import get_logger
from quotagate.limiter.backends import CounterStore, InMemoryCounterStore, RedisCounterStore
from quotagate.limiter.models import QuotaPolicy
from quotagate.limiter.service import RateLimiter

if TYPE_CHECKING:
    from quotagate.core.config import Settings

logger = get_logger(__name__)


def build_store(
    config: "Settings",
    *,
    redis_client: Optional[Any] = None,
    clock: Optional[Clock] = None,
) -> CounterStore:
    """Select the counter store backend.

    Uses Redis when ``redis_enabled`` is set or a client is passed in,
    otherwise an in-process store.
    """
    if config.redis_enabled or redis_client is not None:
        logger.info("Using Redis rate limiter backend")
        return RedisCounterStore(
            redis_client=redis_client,
            redis_url=config.redis_url,
            key_prefix=config.redis_key_prefix,
            socket_timeout=config.redis_socket_timeout,
        )
    logger.debug("Using in-memory rate limiter backend")
    return InMemoryCounterStore(clock=clock)


def build_rate_limiter(
    config: Optional["Settings"] = None,
    *,
    policy: Optional[QuotaPolicy] = None,
    store: Optional[CounterStore] = None,
    redis_client: Optional[Any] = None,
    clock: Optional[Clock] = None,
) -> RateLimiter:
    """Build a rate limiter from settings.

    Every call returns a new limiter; callers own it and inject it where it
    is needed.

    Args:
        config: Settings to read (defaults to the global settings)
        policy: Policy overriding the one described by settings
        store: Counter store overriding backend selection
        redis_client: Redis client for the distributed backend
        clock: Time source shared by the limiter and an in-memory store

    Raises:
        PolicyError: If settings do not describe a valid policy.
    """
    if config is None:
        from quotagate.core.config import settings as config

    clock = clock or SystemClock()
    return RateLimiter(
        policy or config.to_policy(),
        store or build_store(config, redis_client=redis_client, clock=clock),
        clock,
        namespace=config.rate_limit_namespace,
        max_attempts=config.rate_limit_max_attempts,
        on_backend_error=config.backend_error_policy,
        backend_timeout=config.rate_limit_backend_timeout,
        ttl_multiplier=config.rate_limit_ttl_multiplier,
    )


async def start_state_sweeper(limiter: RateLimiter, config: Optional["Settings"] = None) -> bool:
    """Start the periodic expiry sweep for a limiter's in-memory store.

    Redis expires keys itself, so other backends are left alone. Stop the
    sweep with ``await limiter.close()``.

    Args:
        limiter: Limiter whose store should be swept
        config: Settings to read the sweep interval from (defaults to the global settings)

    Returns:
        True if a sweeper was started.
    """
    if config is None:
        from quotagate.core.config import settings as config

    store = limiter.store
    if not isinstance(store, InMemoryCounterStore):
        return False
    await store.start_sweeper(config.rate_limit_sweep_interval_seconds)
    return True
