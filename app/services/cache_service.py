"""
Cache Service for slowly-changing configuration lookups.

Supports:
1. Redis (preferred for production, shared across workers)
2. In-memory fallback (for development/testing)

Usage:
    cache = get_cache()
    settings_rows = await cache.get_membership_settings()
    await cache.invalidate_membership_settings()
"""
import json
from typing import Any, Optional, Dict, List
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache for development/fallback.

    Not shared across server processes.
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Redis errors degrade to cache misses; the database stays the source of truth.
    """

    def __init__(self, redis_url: str):
        self._client = redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self._client.get(key)
            if value:
                return json.loads(value)
            return None
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False


class CacheService:
    """
    Namespaced cache. Keys follow {namespace}:{resource_type}:{identifier}.

    Values must be JSON-serializable (Decimals are stored as strings).
    """

    def __init__(self, backend: CacheBackend, namespace: str = "warehub"):
        self._backend = backend
        self._namespace = namespace

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await self._backend.get(self._make_key(key))

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return await self._backend.set(self._make_key(key), value, ttl)

    async def delete(self, key: str) -> bool:
        return await self._backend.delete(self._make_key(key))

    # ==================== Membership Settings ====================

    async def get_membership_settings(self) -> Optional[List[dict]]:
        return await self.get("membership:settings")

    async def set_membership_settings(self, rows: List[dict], ttl: Optional[int] = None) -> bool:
        ttl = ttl or settings.MEMBERSHIP_CACHE_TTL
        return await self.set("membership:settings", rows, ttl)

    async def invalidate_membership_settings(self) -> bool:
        return await self.delete("membership:settings")

    # ==================== Warehouse Rate Plans ====================

    def _pricing_key(self, warehouse_id: str, pricing_type: str) -> str:
        return f"pricing:{warehouse_id}:{pricing_type}"

    async def get_warehouse_pricing(self, warehouse_id: str, pricing_type: str) -> Optional[dict]:
        return await self.get(self._pricing_key(warehouse_id, pricing_type))

    async def set_warehouse_pricing(
        self,
        warehouse_id: str,
        pricing_type: str,
        data: dict,
        ttl: Optional[int] = None
    ) -> bool:
        ttl = ttl or settings.PRICING_CACHE_TTL
        return await self.set(self._pricing_key(warehouse_id, pricing_type), data, ttl)


# Singleton cache instance
_cache_instance: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Get the cache service singleton."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            backend = RedisCache(settings.REDIS_URL)
            logger.info("Cache initialized with Redis backend")
        else:
            backend = InMemoryCache()
            logger.info("Cache initialized with in-memory backend")

        _cache_instance = CacheService(backend)

    return _cache_instance


def reset_cache() -> None:
    """Drop the singleton so the next get_cache() starts empty."""
    global _cache_instance
    _cache_instance = None
