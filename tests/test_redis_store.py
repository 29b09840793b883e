"""Tests for the Redis-backed counter store.

Uses a mock Redis that executes the store's Lua scripts in Python.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from quotagate.exceptions import BackendUnavailable, StateDecodeError
from quotagate.limiter.backends.redis import RedisCounterStore, decode_state, encode_state
from quotagate.limiter.models import (
    Algorithm,
    BackendErrorPolicy,
    FixedWindowState,
    LeakyBucketState,
    QuotaPolicy,
    SlidingCounterState,
    SlidingLogState,
    TokenBucketState,
)
from quotagate.limiter.redis_lua import COMPARE_AND_SWAP_SCRIPT
from quotagate.limiter.service import RateLimiter


class TestStateEncoding:
    """Tests for canonical state encoding."""

    @pytest.mark.parametrize(
        "state",
        [
            FixedWindowState(count=3, window_start=1000.5),
            SlidingLogState(timestamps=(1.0, 1.0, 2.75)),
            SlidingCounterState(prev_count=4, prev_window_start=940.0, curr_count=2, curr_window_start=1000.0),
            TokenBucketState(tokens=7.0, last_refill=1001.25),
            LeakyBucketState(queue_depth=3, last_leak=999.5),
        ],
    )
    def test_encoding_is_stable_across_decode(self, state):
        """A state read back from Redis encodes to the same bytes it was stored as."""
        encoded = encode_state(state)
        assert decode_state(encoded.encode()) == state
        assert encode_state(decode_state(encoded)) == encoded

    def test_keys_are_sorted(self):
        encoded = encode_state(TokenBucketState(tokens=1.0, last_refill=2.0))
        assert encoded == '{"kind":"token_bucket","last_refill":2.0,"tokens":1.0}'

    def test_invalid_json(self):
        with pytest.raises(StateDecodeError):
            decode_state(b"{not json")

    def test_invalid_utf8(self):
        with pytest.raises(StateDecodeError):
            decode_state(b"\xff\xfe")


class TestRedisCounterStore:
    """Tests for RedisCounterStore."""

    @pytest.fixture
    def store(self, mock_redis):
        return RedisCounterStore(redis_client=mock_redis)

    @pytest.mark.asyncio
    async def test_load_or_init_creates_prefixed_key(self, store, mock_redis):
        initial = FixedWindowState(count=0, window_start=1000.0)
        assert await store.load_or_init("ratelimit:fixed_window:u1", initial) == initial
        assert "quotagate:ratelimit:fixed_window:u1" in mock_redis.data

    @pytest.mark.asyncio
    async def test_load_or_init_returns_existing(self, store):
        first = FixedWindowState(count=0, window_start=1000.0)
        await store.load_or_init("k", first)
        assert await store.load_or_init("k", FixedWindowState(count=0, window_start=5.0)) == first

    @pytest.mark.asyncio
    async def test_compare_and_swap(self, store):
        initial = TokenBucketState(tokens=5.0, last_refill=1000.0)
        loaded = await store.load_or_init("k", initial)

        updated = TokenBucketState(tokens=4.0, last_refill=1000.0)
        assert await store.compare_and_swap("k", loaded, updated) is True
        assert await store.compare_and_swap("k", loaded, updated) is False
        assert await store.load_or_init("k", initial) == updated

    @pytest.mark.asyncio
    async def test_compare_and_swap_missing_key(self, store):
        state = FixedWindowState(count=0, window_start=0.0)
        assert await store.compare_and_swap("missing", state, state) is False

    @pytest.mark.asyncio
    async def test_set_ttl_uses_milliseconds(self, store, mock_redis):
        await store.load_or_init("k", FixedWindowState(count=0, window_start=0.0))
        await store.set_ttl("k", 1.5)
        assert mock_redis.ttls["quotagate:k"] == 1500

        await store.set_ttl("k", 0.0001)
        assert mock_redis.ttls["quotagate:k"] == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_backend_unavailable(self, store, mock_redis):
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("Connection refused"))

        with pytest.raises(BackendUnavailable) as exc_info:
            await store.load_or_init("k", FixedWindowState(count=0, window_start=0.0))
        assert exc_info.value.backend == "redis"

        state = FixedWindowState(count=0, window_start=0.0)
        with pytest.raises(BackendUnavailable):
            await store.compare_and_swap("k", state, state)

    @pytest.mark.asyncio
    async def test_timeout_on_expire_is_backend_unavailable(self, store, mock_redis):
        mock_redis.pexpire = AsyncMock(side_effect=RedisTimeoutError("Timeout"))
        with pytest.raises(BackendUnavailable):
            await store.set_ttl("k", 10)

    @pytest.mark.asyncio
    async def test_corrupt_state(self, store, mock_redis):
        mock_redis.data["quotagate:k"] = b"garbage"

        with pytest.raises(BackendUnavailable) as exc_info:
            await store.load_or_init("k", FixedWindowState(count=0, window_start=0.0))
        assert isinstance(exc_info.value.__cause__, StateDecodeError)

    @pytest.mark.asyncio
    async def test_close(self, store, mock_redis):
        await store.close()
        mock_redis.aclose.assert_awaited_once()
        assert store._redis is None

        # Closing twice is a no-op
        await store.close()
        mock_redis.aclose.assert_awaited_once()

    def test_lazy_client_creation(self):
        client = MagicMock()
        with patch("quotagate.limiter.backends.redis.aioredis.from_url", return_value=client) as from_url:
            store = RedisCounterStore(redis_url="redis://cache:6379/2", socket_timeout=0.5)
            assert store._get_redis() is client
            assert store._get_redis() is client

        from_url.assert_called_once_with("redis://cache:6379/2", socket_timeout=0.5)


class TestRateLimiterOverRedis:
    """End-to-end checks through the facade with the Redis store."""

    @pytest.fixture
    def policy(self):
        return QuotaPolicy(algorithm="fixed_window", capacity=2, window_duration=60)

    @pytest.mark.asyncio
    async def test_quota_shared_between_stores(self, mock_redis, policy, clock):
        """Two limiters on the same Redis behave as one quota."""
        first = RateLimiter(policy, RedisCounterStore(redis_client=mock_redis), clock)
        second = RateLimiter(policy, RedisCounterStore(redis_client=mock_redis), clock)

        assert (await first.check("user:1")).allowed is True
        assert (await second.check("user:1")).allowed is True

        denied = await first.check("user:1")
        assert denied.allowed is False
        assert denied.retry_after == 60.0

    @pytest.mark.asyncio
    async def test_state_key_and_ttl(self, mock_redis, policy, clock):
        limiter = RateLimiter(policy, RedisCounterStore(redis_client=mock_redis), clock)
        await limiter.check("user:1")

        key = "quotagate:ratelimit:fixed_window:user:1"
        assert decode_state(mock_redis.data[key]) == FixedWindowState(count=1, window_start=1000.0)
        assert mock_redis.ttls[key] == 120000

    @pytest.mark.asyncio
    async def test_fail_open_on_redis_error(self, mock_redis, policy, clock):
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        limiter = RateLimiter(policy, RedisCounterStore(redis_client=mock_redis), clock)

        decision = await limiter.check("user:1")
        assert decision.allowed is True
        assert decision.degraded is True

    @pytest.mark.asyncio
    async def test_fail_closed_on_redis_error(self, mock_redis, policy, clock):
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        limiter = RateLimiter(
            policy,
            RedisCounterStore(redis_client=mock_redis),
            clock,
            on_backend_error=BackendErrorPolicy.DENY,
        )

        decision = await limiter.check("user:1")
        assert decision.allowed is False
        assert decision.retry_after == 60.0
        assert decision.degraded is True


class TestRedisConcurrency:
    """Competing checks against one key through the Redis store."""

    @pytest.fixture
    def yielding_redis(self, mock_redis):
        """Mock Redis that lets other tasks run after every script call."""
        run_script = mock_redis.eval
        mock_redis.lost_swaps = 0

        async def yielding_eval(script, num_keys, *args):
            result = await run_script(script, num_keys, *args)
            if script == COMPARE_AND_SWAP_SCRIPT and result == 0:
                mock_redis.lost_swaps += 1
            await asyncio.sleep(0)
            return result

        mock_redis.eval = yielding_eval
        return mock_redis

    @pytest.mark.asyncio
    @pytest.mark.parametrize("algorithm", list(Algorithm))
    async def test_concurrent_tasks_admit_exactly_capacity(self, yielding_redis, clock, algorithm):
        policy = QuotaPolicy(
            algorithm=algorithm,
            capacity=10,
            window_duration=60,
            refill_rate=1,
            refill_interval=60,
            leak_rate=0.01,
        )
        limiter = RateLimiter(
            policy,
            RedisCounterStore(redis_client=yielding_redis),
            clock,
            max_attempts=100,
        )

        decisions = await asyncio.gather(*(limiter.check("shared") for _ in range(40)))

        assert sum(d.allowed for d in decisions) == 10
        assert not any(d.degraded for d in decisions)
        assert yielding_redis.lost_swaps > 0
