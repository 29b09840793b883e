"""Shared fixtures for quotagate tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from quotagate.core.clock import ManualClock
from quotagate.limiter.redis_lua import COMPARE_AND_SWAP_SCRIPT, LOAD_OR_INIT_SCRIPT


@pytest.fixture
def clock():
    """Manual clock starting at a non-zero epoch."""
    return ManualClock(start=1000.0)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client that executes the limiter's Lua scripts.

    Values are stored as bytes, the way redis-py returns them.
    """
    redis = MagicMock()
    redis.data = {}
    redis.ttls = {}

    async def mock_eval(script, num_keys, *args):
        keys, argv = args[:num_keys], args[num_keys:]
        state_key = keys[0]

        if script == LOAD_OR_INIT_SCRIPT:
            current = redis.data.get(state_key)
            if current is not None:
                return current
            redis.data[state_key] = argv[0].encode()
            return argv[0].encode()

        if script == COMPARE_AND_SWAP_SCRIPT:
            current = redis.data.get(state_key)
            if current is None or current.decode() != argv[0]:
                return 0
            redis.data[state_key] = argv[1].encode()
            return 1

        raise AssertionError(f"Unexpected script: {script!r}")

    async def mock_pexpire(key, milliseconds):
        if key not in redis.data:
            return 0
        redis.ttls[key] = milliseconds
        return 1

    redis.eval = mock_eval
    redis.pexpire = mock_pexpire
    redis.aclose = AsyncMock()

    return redis
