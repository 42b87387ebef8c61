"""
Shared Redis connection for state that several API workers must agree on.

Today that is the order intake rate limit window, kept by ``limits`` on top
of this client's connection pool.
"""

from typing import Optional, Union

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from backoffice.core.config import get_settings
from backoffice.core.logging import get_logger

logger = get_logger(__name__)


def _redact(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if "@" not in rest:
        return url
    return f"{scheme}{sep}***@{rest.rsplit('@', 1)[1]}"


class RedisClient:
    """Pooled async Redis connection opened by ``connect()``."""

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        timeout_seconds: float = 5.0,
    ):
        settings = get_settings()
        self.url = url or settings.redis_url
        self.max_connections = max_connections or settings.redis_max_connections
        self.timeout_seconds = timeout_seconds

        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    @property
    def pool(self) -> ConnectionPool:
        """The live pool, for libraries that bring their own Redis commands."""
        if self._pool is None:
            raise ConnectionError("Redis client is not connected")
        return self._pool

    async def connect(self) -> None:
        """
        Open the pool and ping the server once.

        Raises:
            ConnectionError: If the server cannot be reached
        """
        if self.is_connected:
            return

        pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            socket_timeout=self.timeout_seconds,
            socket_connect_timeout=self.timeout_seconds,
            health_check_interval=30,
            retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
            decode_responses=True,
        )
        redis = Redis(connection_pool=pool)
        try:
            await redis.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error("Redis unreachable", url=_redact(self.url), error=str(e))
            await redis.aclose()
            await pool.aclose()
            raise ConnectionError(f"Redis connection failed: {e}") from e

        self._pool, self._redis = pool, redis
        logger.info(
            "Redis connected", url=_redact(self.url), max_connections=self.max_connections
        )

    async def disconnect(self) -> None:
        if not self.is_connected:
            return

        await self._redis.aclose()
        await self._pool.aclose()
        self._pool = self._redis = None
        logger.info("Redis disconnected")

    async def health_check(self) -> bool:
        if not self.is_connected:
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error("Redis ping failed", error=str(e), error_type=type(e).__name__)
            return False


class CacheKeyManager:
    """Joins key parts under one namespace: ``backoffice:ratelimit:orders:1.2.3.4``."""

    def __init__(self, namespace: str = "backoffice"):
        self.namespace = namespace

    def make_key(self, *parts: Union[str, int, None]) -> str:
        return ":".join([self.namespace, *(str(p) for p in parts if p not in (None, ""))])


_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """Return the process-wide client, connecting it on first use."""
    global _client

    if _client is None:
        client = RedisClient()
        await client.connect()
        _client = client
    return _client


async def close_redis_client() -> None:
    global _client

    if _client is not None:
        await _client.disconnect()
        _client = None
