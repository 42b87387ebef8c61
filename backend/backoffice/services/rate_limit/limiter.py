"""
Moving window rate limiting for the public order intake.

``RateLimiter`` holds the policy (how many attempts per client within how
many seconds); a ``RateLimitStore`` keeps the windows in a ``limits`` async
storage. A single process can use the in-memory store, several API workers
must share the Redis store.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, RedisStorage, Storage
from limits.aio.strategies import MovingWindowRateLimiter
from limits.errors import StorageError as LimitsStorageError

from backoffice.cache.redis_client import CacheKeyManager, RedisClient
from backoffice.core.exceptions import RateLimited, StorageError
from backoffice.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


class RateLimitStore:
    """
    Moving window bookkeeping on top of a ``limits`` storage.

    An attempt is recorded only when it is accepted, and check and record are
    one atomic step in the storage. Windows of clients that stopped calling
    expire inside the storage.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self._windows = MovingWindowRateLimiter(storage)

    async def hit(self, key: str, window_seconds: int, limit: int) -> RateLimitDecision:
        item = RateLimitItemPerSecond(limit, window_seconds)
        try:
            allowed = await self._windows.hit(item, key)
            reset_time, remaining = await self._windows.get_window_stats(item, key)
        except LimitsStorageError as e:
            logger.error("Rate limit store unavailable", key=key, error=str(e))
            raise StorageError("Rate limit store unavailable") from e

        return RateLimitDecision(allowed, max(remaining, 0), reset_time - time.time())


class InMemoryRateLimitStore(RateLimitStore):
    """Per-process store. Correct only while a single worker serves intake."""

    def __init__(self) -> None:
        super().__init__(MemoryStorage(wrap_exceptions=True))

    @property
    def tracked_keys(self) -> int:
        return len(self.storage.events)


class RedisRateLimitStore(RateLimitStore):
    """Shared store; windows live in Redis sorted sets under ``backoffice:ratelimit``."""

    @classmethod
    def from_client(
        cls, client: RedisClient, keys: Optional[CacheKeyManager] = None
    ) -> "RedisRateLimitStore":
        keys = keys or CacheKeyManager()
        storage = RedisStorage(
            f"async+{client.url}",
            implementation="redispy",
            wrap_exceptions=True,
            key_prefix=keys.make_key("ratelimit"),
            connection_pool=client.pool,
        )
        return cls(storage)


class RateLimiter:
    """
    Moving window limiter: at most ``limit`` accepted attempts per client
    within any ``window_seconds`` interval.
    """

    def __init__(
        self,
        store: RateLimitStore,
        limit: int = 5,
        window_seconds: int = 60,
        scope: str = "orders",
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.scope = scope

    async def acquire(self, client_id: str) -> int:
        """
        Record an attempt by ``client_id``.

        Returns:
            Attempts left in the current window

        Raises:
            RateLimited: If the client already used up the window
            StorageError: If the store cannot be reached
        """
        decision = await self.store.hit(
            f"{self.scope}:{client_id}", self.window_seconds, self.limit
        )
        if not decision.allowed:
            retry_after = max(1, math.ceil(decision.retry_after))
            logger.warning(
                "Rate limit exceeded",
                scope=self.scope,
                client_id=client_id,
                retry_after=retry_after,
            )
            raise RateLimited(client_id, retry_after)
        return decision.remaining
