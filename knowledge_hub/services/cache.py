"""Redis caching service shared between worker processes."""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from knowledge_hub.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheService:
    """Optional Redis tier for values that are expensive to recompute."""

    def __init__(self, redis_url: str = "", ttl: int = 86400, pool_size: int = 10) -> None:
        """
        Initialize the cache service.

        Args:
            redis_url: Redis connection URL; empty disables the tier.
            ttl: Default time to live in seconds.
            pool_size: Maximum pooled connections.
        """
        self.redis_url = redis_url
        self.ttl = ttl
        self.pool_size = pool_size
        self.client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        """Whether a Redis URL is configured."""
        return bool(self.redis_url)

    async def connect(self) -> None:
        """Connect to Redis."""
        if not self.enabled:
            logger.info("Shared cache disabled (no redis_url configured)")
            return
        try:
            self.client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                max_connections=self.pool_size,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    async def get(self, key: str) -> Optional[str]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found or unreachable.
        """
        if not self.client:
            return None
        try:
            return await self.client.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Set a value in cache.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time to live in seconds.
        """
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl or self.ttl, value)
        except Exception as e:
            raise CacheError(f"Failed to set cache: {str(e)}") from e

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Get a JSON value from cache.

        Args:
            key: Cache key.

        Returns:
            Parsed JSON value or None if not found.
        """
        value = await self.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set a JSON value in cache.

        Args:
            key: Cache key.
            value: JSON-serialisable value.
            ttl: Time to live in seconds.
        """
        await self.set(key, json.dumps(value), ttl)
