import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from taskboard.core.config import Settings

logger = logging.getLogger(__name__)


class CacheLayer:
    """
    Read-through cache backed by Redis.

    Features:
    - Fixed TTL per key (callers may override per call)
    - Reads bypass to the loader when Redis errors; nothing is raised
    - Invalidation failures are raised so the write is reported as failed
    - Degrades to a process-local TTLCache when Redis is unreachable at startup,
      retrying the connection every `redis_retry_seconds`
    - Automatic key namespacing
    """

    def __init__(
        self,
        settings: Settings,
        redis: Redis | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._client = redis
        self._redis: Redis | None = None
        self._timer = timer
        self.local: TTLCache | None = None
        self._retry_at: float | None = None
        self._initialized = False

        # Stats tracking
        self.stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
        }

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "local"

    @property
    def degraded(self) -> bool:
        return self._initialized and self._redis is None

    def _new_client(self) -> Redis:
        if self._client is not None:
            return self._client
        settings = self._settings
        return Redis.from_url(
            settings.redis_dsn,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_pool_size,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    async def _connect(self) -> bool:
        client = self._new_client()
        try:
            # Verify connection
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error("Redis unavailable, using local cache: %s", e)
            await client.aclose()
            self._retry_at = self._timer() + self._settings.redis_retry_seconds
            return False

        self._redis = client
        self.local = None
        self._retry_at = None
        logger.info("Redis connection established")
        return True

    async def init_cache(self):
        """Open the Redis connection, falling back to local mode if it is down."""
        if self._initialized:
            if self._redis is None and self._timer() >= self._retry_at:
                await self._connect()
            return

        if not await self._connect():
            self.local = TTLCache(
                maxsize=self._settings.local_cache_maxsize,
                ttl=self._settings.tasks_cache_ttl_seconds,
                timer=self._timer,
            )

        self._initialized = True
        logger.info("Cache layer initialized (%s)", self.backend)

    def _key(self, key: str) -> str:
        """Build namespaced cache key."""
        return f"{self._settings.cache_namespace}{key}"

    def _serialize(self, value: Any) -> str:
        """Serialize value for storage."""
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Serialization failed: %s", e)
            raise

    def _deserialize(self, raw: str) -> Any:
        """Deserialize value from storage."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw

    async def get(
        self,
        key: str,
        loader: Optional[Callable[[], Awaitable[Any]]] = None,
        ttl: Optional[int] = None,
    ):
        """
        Retrieve value from the cache, or from loader on a miss.

        Args:
            key: Cache key (will be namespaced automatically)
            loader: Async function to load value on cache miss
            ttl: Expiry in seconds (uses the configured default if None)

        Returns:
            Cached value or loaded value, or None if not found
        """
        await self.init_cache()
        full_key = self._key(key)

        if self._redis is not None:
            try:
                raw = await self._redis.get(full_key)
                if raw is not None:
                    self.stats["hits"] += 1
                    logger.debug("Cache hit: %s", key)
                    return self._deserialize(raw)
            except RedisError as e:
                logger.error("Redis GET error for %s: %s", key, e)
                self.stats["errors"] += 1
        elif full_key in self.local:
            self.stats["hits"] += 1
            logger.debug("Local cache hit: %s", key)
            return self._deserialize(self.local[full_key])

        self.stats["misses"] += 1
        if loader is None:
            logger.debug("Cache miss, no loader: %s", key)
            return None

        logger.debug("Loading from source: %s", key)
        value = await loader()
        if value is None:
            return None

        await self.set(key, value, ttl)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """
        Store a value with expiry.

        Args:
            key: Cache key (will be namespaced automatically)
            value: JSON-serializable value to cache
            ttl: Expiry in seconds
        """
        await self.init_cache()
        full_key = self._key(key)

        if self._redis is None:
            self.local[full_key] = self._serialize(value)
            return

        try:
            data = self._serialize(value)
            await self._redis.set(
                full_key, data, ex=ttl or self._settings.tasks_cache_ttl_seconds
            )
            logger.debug("Stored %s", key)
        except RedisError as e:
            logger.error("Redis SET error for %s: %s", key, e)
            self.stats["errors"] += 1

    async def delete(self, key: str):
        """
        Delete a key.

        Redis errors are counted and re-raised; a write must not report
        success while the previous snapshot is still being served.
        """
        await self.init_cache()
        full_key = self._key(key)

        if self._redis is None:
            self.local.pop(full_key, None)
            return

        try:
            await self._redis.delete(full_key)
            logger.debug("Deleted %s", key)
        except RedisError as e:
            logger.error("Redis DELETE error for %s: %s", key, e)
            self.stats["errors"] += 1
            raise

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis is not None:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error("Error closing Redis: %s", e)

    def get_stats(self) -> dict:
        total = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "backend": self.backend,
            "hit_rate": self.stats["hits"] / total if total > 0 else 0,
        }
