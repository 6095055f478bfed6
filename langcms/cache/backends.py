"""Key-value backends behind the content cache."""

from __future__ import annotations

import fnmatch
import logging
import time
from typing import Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_DELETE_BATCH = 500


class CacheBackend(Protocol):
    """Minimal string key-value interface with TTLs."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def delete_pattern(self, pattern: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisCacheBackend:
    """Redis (or any Redis-protocol KV store) via ``redis.asyncio``."""

    def __init__(self, url: str, client: aioredis.Redis | None = None) -> None:
        self.url = url
        self._client = client or aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        if ttl:
            await self._client.set(key, value, ex=ttl)
        else:
            await self._client.set(key, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob using SCAN, never FLUSHDB."""
        deleted = 0
        batch: list[str] = []
        async for key in self._client.scan_iter(match=pattern, count=_DELETE_BATCH):
            batch.append(key)
            if len(batch) >= _DELETE_BATCH:
                deleted += await self.delete(*batch)
                batch = []
        if batch:
            deleted += await self.delete(*batch)
        return deleted

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


class MemoryCacheBackend:
    """In-process backend for development and tests.  State is lost on restart.

    Safe under asyncio's single-threaded model: no await points between
    read and mutation.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                deleted += 1
            self._data.pop(key, None)
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        matching = [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern)]
        return await self.delete(*matching)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()


def create_backend(redis_url: str) -> CacheBackend:
    """Pick the Redis backend when a URL is configured, memory otherwise."""
    if redis_url:
        logger.info("Using Redis cache backend")
        return RedisCacheBackend(redis_url)
    logger.info("REDIS_URL not set, using in-process memory cache")
    return MemoryCacheBackend()
