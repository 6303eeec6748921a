"""Session stores used for token revocation checks.

A session is live while its record exists in the store. Revoking a session
deletes the record, which invalidates every token carrying its id.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from admission.app.core.logging import get_logger
from admission.app.exceptions import SessionStoreError

logger = get_logger(__name__)


class SessionStore(ABC):
    """Abstract base class for session stores."""

    @abstractmethod
    async def is_active(self, session_id: str) -> bool:
        """Return True if the session exists and has not been revoked.

        Raises:
            SessionStoreError: If the store cannot be queried.
        """

    @abstractmethod
    async def create(self, session_id: str, subject_id: str, ttl: int) -> None:
        """Record a live session for ``subject_id`` expiring after ``ttl`` seconds."""

    @abstractmethod
    async def revoke(self, session_id: str) -> bool:
        """Revoke a session.

        Returns:
            True if a live session was revoked, False if none existed.
        """


class InMemorySessionStore(SessionStore):
    """In-memory session store with TTL support."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    async def is_active(self, session_id: str) -> bool:
        async with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return False
            if entry[1] <= self._clock():
                del self._sessions[session_id]
                return False
            return True

    async def create(self, session_id: str, subject_id: str, ttl: int) -> None:
        async with self._lock:
            self._sessions[session_id] = (subject_id, self._clock() + ttl)

    async def revoke(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None


class RedisSessionStore(SessionStore):
    """Redis-based session store.

    Key format: ``session:{session_id}`` holding the subject id, with the
    session TTL as key expiry.
    """

    KEY_PREFIX = "session"

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: str = "redis://localhost:6379/0",
        timeout: float = 0.5,
    ) -> None:
        self._redis = redis_client
        self._redis_url = redis_url
        self._timeout = timeout

    def _get_redis(self) -> Any:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, socket_timeout=self._timeout)
        return self._redis

    def _make_key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}:{session_id}"

    async def _call(self, operation: str, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Session store {operation} timed out after {self._timeout}s")
            raise SessionStoreError("timeout") from e
        except RedisError as e:
            logger.error(f"Session store {operation} failed: {e}")
            raise SessionStoreError("redis_error") from e

    async def is_active(self, session_id: str) -> bool:
        redis = self._get_redis()
        return await self._call("exists", redis.exists(self._make_key(session_id))) > 0

    async def create(self, session_id: str, subject_id: str, ttl: int) -> None:
        redis = self._get_redis()
        await self._call("setex", redis.setex(self._make_key(session_id), ttl, subject_id))

    async def revoke(self, session_id: str) -> bool:
        redis = self._get_redis()
        return await self._call("delete", redis.delete(self._make_key(session_id))) > 0
