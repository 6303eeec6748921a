"""Fixed-window rate limiter.

Windows are aligned to the clock: a window of W seconds covers
``[k * W, (k + 1) * W)`` for bucket index ``k = floor(now / W)``. A request
that pushes a bucket over its limit is still counted, and the budget comes
back exactly at the window boundary regardless of when the first request
of the window arrived. This permits bursts of up to twice the limit across
a boundary.
"""

import math
import time
from typing import Callable, Optional

from admission.app.core.logging import get_logger
from admission.app.services.counter_store import CounterStore
from admission.app.services.models import RateLimitDecision, RateLimitPolicy

logger = get_logger(__name__)


class RateLimiter:
    """Decides whether a request for a key fits in its fixed-window budget.

    The limiter holds no counters itself; all state lives in the injected
    counter store, which must provide atomic increments.
    """

    def __init__(
        self,
        store: CounterStore,
        default_policy: RateLimitPolicy,
        key_prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            store: Counter store providing atomic increment-with-TTL
            default_policy: Policy used when ``check`` is called without one
            key_prefix: Namespace for composite storage keys
            clock: Source of the current UNIX time in seconds
        """
        self._store = store
        self.default_policy = default_policy
        self._key_prefix = key_prefix
        self._clock = clock

    def storage_key(self, key: str, bucket_index: int) -> str:
        return f"{self._key_prefix}:{key}:{bucket_index}"

    async def check(
        self, key: str, policy: Optional[RateLimitPolicy] = None
    ) -> RateLimitDecision:
        """Count a request for ``key`` and decide whether it is allowed.

        Args:
            key: Caller identifier such as ``"ip:<hash>"`` or ``"user:<id>"``
            policy: Budget to apply, defaults to ``default_policy``

        Returns:
            RateLimitDecision; an over-limit request is a regular value with
            ``allowed=False``.

        Raises:
            RateLimitStoreError: If the counter store is unreachable.
        """
        policy = policy or self.default_policy
        window = policy.window_seconds
        now = self._clock()
        bucket_index = int(now // window)

        snapshot = await self._store.increment_and_get_ttl(
            self.storage_key(key, bucket_index), window
        )

        reset_at = (bucket_index + 1) * window
        allowed = snapshot.count <= policy.limit
        retry_after = 0 if allowed else max(0, math.ceil(reset_at - now))

        if not allowed and snapshot.count == policy.limit + 1:
            # Log once per window, on the first rejected request
            logger.info(
                f"Rate limit reached for {key}: {policy.limit} per {window}s",
                extra={"client_key": key},
            )

        return RateLimitDecision(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - snapshot.count),
            reset_at=reset_at,
            retry_after=retry_after,
        )
