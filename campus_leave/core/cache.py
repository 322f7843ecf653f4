"""
Query Cache

Read-through cache for user lookups, with an in-process backend and a
Redis backend. Keys are namespaced by collection, e.g. ``users:id:<id>``,
so a whole collection can be dropped with ``invalidate_pattern("users")``.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from campus_leave.config import Settings
from campus_leave.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheBackend:
    """Abstract cache backend interface"""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> None:
        raise NotImplementedError

    async def invalidate(self, key: str) -> None:
        raise NotImplementedError

    async def invalidate_pattern(self, prefix: str) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class MemoryCache(CacheBackend):
    """Per-process cache; entries expire after ``default_ttl`` seconds"""

    def __init__(self, default_ttl: Optional[int] = None, timer: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self.timer = timer
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and expires_at <= self.timer():
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> None:
        ttl = expire if expire is not None else self.default_ttl
        expires_at = self.timer() + ttl if ttl else None
        self._entries[key] = (value, expires_at)

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_pattern(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def close(self) -> None:
        self._entries.clear()


class RedisCache(CacheBackend):
    """Redis cache backend; values are stored as JSON"""

    def __init__(self, url: str, default_ttl: Optional[int] = None):
        self.default_ttl = default_ttl
        self.redis = redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.redis.get(key)
        except RedisError as e:
            # A failed read degrades to a miss, the store is the source of truth
            logger.error(f"Cache get failed for key '{key}': {e}")
            return None

        if value is None:
            return None
        return json.loads(value)

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> None:
        ttl = expire if expire is not None else self.default_ttl
        try:
            await self.redis.set(key, json.dumps(value, default=str), ex=ttl or None)
        except RedisError as e:
            logger.error(f"Cache set failed for key '{key}': {e}")

    async def invalidate(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.error(f"Cache invalidate failed for key '{key}': {e}")
            raise CacheError(f"Cache invalidation failed for '{key}': {e}")

    async def invalidate_pattern(self, prefix: str) -> int:
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{prefix}*")]
            if keys:
                return await self.redis.delete(*keys)
            return 0
        except RedisError as e:
            logger.error(f"Cache invalidate failed for pattern '{prefix}*': {e}")
            raise CacheError(f"Cache invalidation failed for '{prefix}*': {e}")

    async def close(self) -> None:
        await self.redis.aclose()


def build_cache(settings: Settings) -> CacheBackend:
    """Pick the cache backend from settings"""
    if settings.REDIS_ENABLED:
        logger.info("Using Redis query cache")
        return RedisCache(settings.REDIS_URL, default_ttl=settings.CACHE_TTL_SECONDS)
    return MemoryCache(default_ttl=settings.CACHE_TTL_SECONDS)
