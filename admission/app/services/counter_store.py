"""Counter stores backing the fixed-window rate limiter.

A counter store owns bucket expiry: every increment is paired with the
bucket TTL so an abandoned window disappears on its own.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from admission.app.core.logging import get_logger
from admission.app.exceptions import RateLimitStoreError
from admission.app.services.models import CounterSnapshot
from admission.app.services.redis_lua import INCREMENT_WITH_TTL_SCRIPT

logger = get_logger(__name__)


class CounterStore(ABC):
    """Abstract base class for counter stores."""

    @abstractmethod
    async def increment_and_get_ttl(self, key: str, ttl_seconds: int) -> CounterSnapshot:
        """Atomically increment ``key`` and return the new count and its TTL.

        When the increment creates the key, the key must be set to expire
        ``ttl_seconds`` later as part of the same atomic operation.

        Raises:
            RateLimitStoreError: If the store is unreachable or timed out.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""

    async def close(self) -> None:
        """Release connections held by the store."""


@dataclass
class _Counter:
    """Internal counter with absolute expiry."""
    count: int
    expires_at: float


class InMemoryCounterStore(CounterStore):
    """In-memory counter store.

    Suitable for single-instance deployments and tests. Expired counters
    are dropped lazily on access and by ``cleanup()``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._counters: Dict[str, _Counter] = {}
        self._lock = asyncio.Lock()

    async def increment_and_get_ttl(self, key: str, ttl_seconds: int) -> CounterSnapshot:
        async with self._lock:
            now = self._clock()
            counter = self._counters.get(key)
            if counter is None or counter.expires_at <= now:
                counter = _Counter(count=0, expires_at=now + ttl_seconds)
                self._counters[key] = counter
            counter.count += 1
            return CounterSnapshot(
                count=counter.count,
                ttl_remaining=max(0, math.ceil(counter.expires_at - now)),
            )

    async def ping(self) -> bool:
        return True

    async def cleanup(self) -> int:
        """Remove expired counters.

        Returns:
            Number of counters removed.
        """
        async with self._lock:
            now = self._clock()
            expired = [k for k, c in self._counters.items() if c.expires_at <= now]
            for key in expired:
                del self._counters[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._counters)


class RedisCounterStore(CounterStore):
    """Redis-based counter store for multi-instance deployments.

    Uses a Lua script so INCR and EXPIRE are applied as one atomic step.
    Every round-trip is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: str = "redis://localhost:6379/0",
        timeout: float = 0.5,
    ) -> None:
        """Initialize Redis counter store.

        Args:
            redis_client: Optional Redis client instance
            redis_url: Redis connection URL, used when no client is given
            timeout: Seconds to wait for each Redis call
        """
        self._redis = redis_client
        self._redis_url = redis_url
        self._timeout = timeout

    def _get_redis(self) -> Any:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, socket_timeout=self._timeout)
        return self._redis

    async def increment_and_get_ttl(self, key: str, ttl_seconds: int) -> CounterSnapshot:
        redis = self._get_redis()
        try:
            result = await asyncio.wait_for(
                redis.eval(INCREMENT_WITH_TTL_SCRIPT, 1, key, ttl_seconds),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Counter store timeout after {self._timeout}s")
            raise RateLimitStoreError("timeout") from e
        except RedisError as e:
            logger.error(f"Counter store error: {e}")
            raise RateLimitStoreError("redis_error") from e

        return CounterSnapshot(count=int(result[0]), ttl_remaining=int(result[1]))

    async def ping(self) -> bool:
        redis = self._get_redis()
        try:
            return bool(await asyncio.wait_for(redis.ping(), timeout=self._timeout))
        except (asyncio.TimeoutError, RedisError) as e:
            logger.warning(f"Counter store ping failed: {e!r}")
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
