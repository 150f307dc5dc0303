"""Keyed caches with per-entry TTL.

Two backends share the same async interface:

* ``MemoryCache`` - per-process, size bounded (least recently used entry is
  evicted first), time read from an injectable clock.
* ``RedisCache`` - shared between API workers, values stored as JSON.

Both only ever overwrite or expire entries; concurrent requests may compute
the same value twice.
"""

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from encore.config import Settings

logger = logging.getLogger(__name__)


class MemoryCache:
    """In-process LRU cache with per-entry expiry."""

    def __init__(
        self,
        max_entries: int = 100,
        default_ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = (self._clock() + ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def ping(self) -> bool:
        return True


class RedisCache:
    """Redis-backed cache; values must be JSON serializable."""

    def __init__(self, client, prefix: str = "encore:", default_ttl: float = 3600.0):
        self.client = client
        self.prefix = prefix
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        await self.client.set(self._key(key), json.dumps(value), ex=max(1, int(ttl)))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def clear(self) -> None:
        async for key in self.client.scan_iter(match=f"{self.prefix}*"):
            await self.client.delete(key)

    async def ping(self) -> bool:
        return bool(await self.client.ping())


class EngineCaches:
    """The three caches shared by all requests."""

    def __init__(self, recommendations, popularity, profiles):
        self.recommendations = recommendations
        self.popularity = popularity
        self.profiles = profiles

    async def ping(self) -> bool:
        return await self.recommendations.ping()


def build_caches(settings: Settings, redis_client=None) -> EngineCaches:
    """Create the engine caches for the configured backend."""
    if settings.cache_backend == "redis":
        if redis_client is None:
            from redis import asyncio as aioredis

            redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Using Redis cache backend at %s", settings.redis_url)
        return EngineCaches(
            recommendations=RedisCache(
                redis_client, "encore:", settings.recommendation_cache_ttl_seconds
            ),
            popularity=RedisCache(
                redis_client, "encore:", settings.popularity_cache_ttl_seconds
            ),
            profiles=RedisCache(
                redis_client, "encore:", settings.profile_cache_ttl_seconds
            ),
        )

    if settings.cache_backend != "memory":
        raise ValueError(f"Unsupported cache backend: {settings.cache_backend}")

    return EngineCaches(
        recommendations=MemoryCache(
            settings.cache_max_entries, settings.recommendation_cache_ttl_seconds
        ),
        popularity=MemoryCache(1, settings.popularity_cache_ttl_seconds),
        profiles=MemoryCache(
            settings.cache_max_entries, settings.profile_cache_ttl_seconds
        ),
    )
