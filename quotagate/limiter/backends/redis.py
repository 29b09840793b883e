"""Redis-backed distributed counter store.

Every process pointing at the same Redis shares one logical quota per key.
Composite states are stored as canonical JSON strings and updated with Lua
scripts, so the check-and-update is atomic across the fleet.

Redis key format:
- {key_prefix}{limiter key} - JSON encoded counter state
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from quotagate.core.logging import get_logger
from quotagate.exceptions import BackendUnavailable, StateDecodeError
from quotagate.limiter.backends.base import CounterStore
from quotagate.limiter.models import CounterState, state_from_dict, state_to_dict
from quotagate.limiter.redis_lua import COMPARE_AND_SWAP_SCRIPT, LOAD_OR_INIT_SCRIPT

logger = get_logger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def encode_state(state: CounterState) -> str:
    """Serialize a state deterministically so equal states encode equally."""
    return json.dumps(state_to_dict(state), sort_keys=True, separators=(",", ":"))


def decode_state(raw: Any) -> CounterState:
    """Deserialize a state read from Redis.

    Raises:
        StateDecodeError: If the payload is not a valid encoded state.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StateDecodeError("Counter state is not valid UTF-8") from e
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise StateDecodeError(f"Counter state is not valid JSON: {e}") from e
    return state_from_dict(data)


class RedisCounterStore(CounterStore):
    """Counter store on top of Redis atomic scripts.

    Example:
        >>> store = RedisCounterStore(redis_url="redis://localhost:6379/0")
        >>> limiter = RateLimiter(policy, store)
    """

    name = "redis"
    DEFAULT_KEY_PREFIX = "quotagate:"

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        socket_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Redis counter store.

        Args:
            redis_client: Optional redis.asyncio client instance
            redis_url: Redis connection URL used when no client is given
            key_prefix: Prefix for every state key
            socket_timeout: Socket timeout for a lazily created client
        """
        self._redis = redis_client
        self._redis_url = redis_url or DEFAULT_REDIS_URL
        self._key_prefix = key_prefix
        self._socket_timeout = socket_timeout

    def _get_redis(self) -> Any:
        """Get or create the Redis client."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def load_or_init(self, key: str, initial_state: CounterState) -> CounterState:
        redis_key = self._make_key(key)
        try:
            raw = await self._get_redis().eval(
                LOAD_OR_INIT_SCRIPT,
                1,  # Number of keys
                redis_key,  # KEYS[1]
                encode_state(initial_state),  # ARGV[1]
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Redis load failed for {redis_key}: {e}")
            raise BackendUnavailable(f"Redis load failed: {e}", backend=self.name) from e

        try:
            return decode_state(raw)
        except StateDecodeError as e:
            logger.error(f"Corrupt rate limit state at {redis_key}: {e}")
            raise BackendUnavailable(f"Corrupt state: {e.detail}", backend=self.name) from e

    async def compare_and_swap(
        self,
        key: str,
        expected_state: CounterState,
        new_state: CounterState,
    ) -> bool:
        redis_key = self._make_key(key)
        try:
            result = await self._get_redis().eval(
                COMPARE_AND_SWAP_SCRIPT,
                1,  # Number of keys
                redis_key,  # KEYS[1]
                encode_state(expected_state),  # ARGV[1]
                encode_state(new_state),  # ARGV[2]
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Redis compare-and-swap failed for {redis_key}: {e}")
            raise BackendUnavailable(f"Redis compare-and-swap failed: {e}", backend=self.name) from e
        return int(result) == 1

    async def set_ttl(self, key: str, ttl: float) -> None:
        redis_key = self._make_key(key)
        try:
            await self._get_redis().pexpire(redis_key, max(1, int(ttl * 1000)))
        except (RedisError, OSError) as e:
            logger.warning(f"Redis PEXPIRE failed for {redis_key}: {e}")
            raise BackendUnavailable(f"Redis expire failed: {e}", backend=self.name) from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as e:
                logger.warning(f"Error closing Redis connection: {e}")
            self._redis = None
