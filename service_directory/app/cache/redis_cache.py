"""
Redis caching layer for the Directory Service.
"""

import json
import math
from typing import Any, Optional, Tuple

import redis.asyncio as redis

from shared.logging import get_logger

from .base import Cache


class RedisCache(Cache):
    """Redis-backed cache.

    Values are stored as JSON under ``key_prefix + key`` with ``SETEX``, so
    Redis enforces the absolute expiration. Connection and command errors are
    raised to the caller; the directory service decides how to degrade.
    """

    def __init__(self, redis_url: str, key_prefix: str = "freelancers:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("directory.cache.redis")
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def try_get(self, key: str) -> Tuple[Any, bool]:
        client = await self._get_redis()
        raw = await client.get(self._make_key(key))
        if raw is None:
            return None, False
        return json.loads(raw), True

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        client = await self._get_redis()
        # SETEX takes whole seconds; never round a short TTL down to "no expiry"
        ttl = max(1, int(math.ceil(ttl_seconds)))
        await client.setex(self._make_key(key), ttl, json.dumps(value))
        self.logger.debug("Cached value", key=key, ttl=ttl)

    async def remove(self, key: str) -> None:
        client = await self._get_redis()
        await client.delete(self._make_key(key))

    async def ping(self) -> bool:
        client = await self._get_redis()
        return bool(await client.ping())

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis cache closed")
