"""Tests for the fixed-window rate limiter."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from admission.app.exceptions import PolicyConfigurationError, RateLimitStoreError
from admission.app.services.counter_store import InMemoryCounterStore, RedisCounterStore
from admission.app.services.models import RateLimitDecision, RateLimitPolicy
from admission.app.services.rate_limiter import RateLimiter


@pytest.fixture
def policy():
    return RateLimitPolicy(limit=5, window_seconds=60)


@pytest.fixture
def limiter(clock, policy):
    return RateLimiter(InMemoryCounterStore(clock=clock), default_policy=policy, clock=clock)


class TestRateLimitPolicy:
    """Policy validation happens at construction time."""

    @pytest.mark.parametrize("limit,window", [(0, 60), (-1, 60), (5, 0), (5, -10)])
    def test_rejects_non_positive_values(self, limit, window):
        with pytest.raises(PolicyConfigurationError):
            RateLimitPolicy(limit=limit, window_seconds=window)

    def test_rejects_non_integer_values(self):
        with pytest.raises(PolicyConfigurationError):
            RateLimitPolicy(limit=5, window_seconds=1.5)
        with pytest.raises(PolicyConfigurationError):
            RateLimitPolicy(limit=True, window_seconds=60)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            RateLimitPolicy(limit=0, window_seconds=60)


class TestFixedWindow:
    """Counting behaviour within and across windows."""

    @pytest.mark.asyncio
    async def test_limit_then_reject_in_same_window(self, limiter):
        """Calls 1-5 are allowed with remaining 4..0, call 6 is rejected."""
        results = [await limiter.check("ip:10.0.0.1") for _ in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_new_window_resets_count(self, limiter, clock):
        """A call 61 seconds after the first starts a fresh window."""
        for _ in range(5):
            await limiter.check("ip:10.0.0.1")

        clock.advance(61)
        result = await limiter.check("ip:10.0.0.1")

        assert result.allowed is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_over_limit_requests_keep_counting(self, limiter):
        for _ in range(8):
            result = await limiter.check("user:alice")
        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_reset_at_is_window_boundary(self, limiter, clock):
        """reset_at is fixed per window and moves by W in the next one."""
        clock.advance(10)
        first = await limiter.check("user:alice")
        clock.advance(30)
        second = await limiter.check("user:alice")

        assert first.reset_at == second.reset_at
        assert first.reset_at % 60 == 0
        assert first.reset_at > clock.now

        clock.advance(30)
        third = await limiter.check("user:alice")
        assert third.reset_at == first.reset_at + 60

    @pytest.mark.asyncio
    async def test_window_is_clock_aligned_not_first_request_aligned(self, limiter, clock):
        """A burst at the end of a window does not carry into the next one."""
        clock.advance(59)
        for _ in range(5):
            assert (await limiter.check("user:bob")).allowed is True
        assert (await limiter.check("user:bob")).allowed is False

        clock.advance(1)
        result = await limiter.check("user:bob")
        assert result.allowed is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_retry_after_counts_down_to_boundary(self, limiter, clock):
        clock.advance(45)
        for _ in range(5):
            allowed = await limiter.check("user:carol")
            assert allowed.retry_after == 0
        rejected = await limiter.check("user:carol")
        assert rejected.retry_after == 15

    @pytest.mark.asyncio
    async def test_different_keys_independent(self, limiter):
        for _ in range(6):
            await limiter.check("key1")

        assert (await limiter.check("key1")).allowed is False
        assert (await limiter.check("key2")).allowed is True

    @pytest.mark.asyncio
    async def test_policy_override(self, limiter):
        strict = RateLimitPolicy(limit=1, window_seconds=10)
        first = await limiter.check("user:dave", strict)
        second = await limiter.check("user:dave", strict)

        assert first.allowed is True
        assert first.limit == 1
        assert second.allowed is False

    @pytest.mark.asyncio
    async def test_decision_is_immutable(self, limiter):
        result = await limiter.check("user:erin")
        assert isinstance(result, RateLimitDecision)
        with pytest.raises(AttributeError):
            result.allowed = False


class TestConcurrency:
    """Concurrent checks must observe distinct counts."""

    @pytest.mark.asyncio
    async def test_concurrent_checks_in_memory(self, clock):
        limit = 20
        limiter = RateLimiter(
            InMemoryCounterStore(clock=clock),
            default_policy=RateLimitPolicy(limit=limit, window_seconds=60),
            clock=clock,
        )

        results = await asyncio.gather(*(limiter.check("user:alice") for _ in range(limit)))

        assert all(r.allowed for r in results)
        assert sorted(r.remaining for r in results) == list(range(limit))

    @pytest.mark.asyncio
    async def test_concurrent_checks_redis(self, clock, mock_redis):
        n, limit = 8, 10
        limiter = RateLimiter(
            RedisCounterStore(redis_client=mock_redis),
            default_policy=RateLimitPolicy(limit=limit, window_seconds=60),
            clock=clock,
        )

        results = await asyncio.gather(*(limiter.check("user:alice") for _ in range(n)))

        assert all(r.allowed for r in results)
        assert {r.remaining for r in results} == set(range(limit - n, limit))


class TestStoreInteraction:
    """Storage keys and store failures."""

    @pytest.mark.asyncio
    async def test_composite_key_and_ttl(self, clock, mock_redis):
        limiter = RateLimiter(
            RedisCounterStore(redis_client=mock_redis),
            default_policy=RateLimitPolicy(limit=5, window_seconds=60),
            key_prefix="rl",
            clock=clock,
        )
        await limiter.check("ip:abc")

        bucket = int(clock.now // 60)
        assert mock_redis.data == {f"rl:ip:abc:{bucket}": "1"}
        assert mock_redis.ttls[f"rl:ip:abc:{bucket}"] == 60

    @pytest.mark.asyncio
    async def test_store_failure_is_not_a_rejection(self, clock, policy):
        store = AsyncMock()
        store.increment_and_get_ttl.side_effect = RateLimitStoreError("timeout")
        limiter = RateLimiter(store, default_policy=policy, clock=clock)

        with pytest.raises(RateLimitStoreError) as exc_info:
            await limiter.check("user:alice")
        assert exc_info.value.reason == "timeout"
