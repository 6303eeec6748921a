"""Shared fixtures for admission tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

SECRET = "test-secret-0123456789abcdef0123456789abcdef"
OTHER_SECRET = "other-secret-fedcba9876543210fedcba9876543210"

# 2023-11-14T22:13:00Z, aligned to a 60 second window boundary
WINDOW_ALIGNED_NOW = 1_699_999_980.0


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = WINDOW_ALIGNED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis():
    """Create a dict-backed mock Redis client for testing."""
    redis = MagicMock()
    redis.data = {}
    redis.ttls = {}

    async def mock_eval(script, num_keys, *args):
        """Simulate INCREMENT_WITH_TTL_SCRIPT: KEYS[1]=counter, ARGV[1]=ttl."""
        key, ttl = args[0], int(args[1])
        count = int(redis.data.get(key, "0")) + 1
        redis.data[key] = str(count)
        if count == 1 or key not in redis.ttls:
            redis.ttls[key] = ttl
        return [count, redis.ttls[key]]

    async def mock_get(key):
        value = redis.data.get(key)
        return value.encode() if isinstance(value, str) else value

    async def mock_setex(key, ttl, value):
        redis.data[key] = value.decode() if isinstance(value, bytes) else str(value)
        redis.ttls[key] = ttl

    async def mock_exists(key):
        return 1 if key in redis.data else 0

    async def mock_delete(key):
        existed = redis.data.pop(key, None) is not None
        redis.ttls.pop(key, None)
        return 1 if existed else 0

    async def mock_ping():
        return True

    redis.eval = mock_eval
    redis.get = mock_get
    redis.setex = mock_setex
    redis.exists = mock_exists
    redis.delete = mock_delete
    redis.ping = mock_ping
    redis.aclose = AsyncMock()

    return redis
