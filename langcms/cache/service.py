"""Namespaced JSON cache with hit/miss accounting."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from langcms.cache.keys import collection_keys, flat_file_pattern, list_pattern
from langcms.exceptions import StorageError

if TYPE_CHECKING:
    from langcms.cache.backends import CacheBackend

logger = logging.getLogger(__name__)

MISS: Any = object()
"""Returned by ``ContentCache.get_json`` when the key is absent."""

_BACKEND_ERRORS = (RedisError, OSError, TimeoutError)


@dataclass
class CacheStats:
    """Operation counters since process start."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0
    last_error: str | None = None


class ContentCache:
    """JSON values on top of a string backend, with namespaced keys.

    Every method raises StorageError when the backend fails; callers decide
    whether that is fatal.  Values are serialized with ``json.dumps`` so a
    cached JSON ``null`` is a hit, distinguishable from ``MISS``.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        namespace: str = "langcms",
        content_ttl: int = 300,
        list_ttl: int = 60,
    ) -> None:
        self.backend = backend
        self.namespace = namespace
        self.content_ttl = content_ttl
        self.list_ttl = list_ttl
        self.stats = CacheStats()

    def _k(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _fail(self, operation: str, key: str, exc: Exception) -> StorageError:
        self.stats.errors += 1
        self.stats.last_error = f"{operation} {key}: {exc}"
        logger.warning("Cache %s failed for %s: %s", operation, key, exc)
        return StorageError(f"cache {operation}", str(exc))

    async def get_json(self, key: str) -> Any:
        """Return the decoded value, or ``MISS``."""
        try:
            raw = await self.backend.get(self._k(key))
        except _BACKEND_ERRORS as exc:
            raise self._fail("get", key, exc) from exc
        if raw is None:
            self.stats.misses += 1
            logger.debug("Cache miss: %s", key)
            return MISS
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            # A corrupt entry is dropped and reported as a miss.
            logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
            await self.delete(key)
            self.stats.misses += 1
            return MISS
        self.stats.hits += 1
        logger.debug("Cache hit: %s", key)
        return value

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``.  ``ttl=None`` keeps the entry until deleted."""
        try:
            await self.backend.set(self._k(key), json.dumps(value), ttl)
        except _BACKEND_ERRORS as exc:
            raise self._fail("set", key, exc) from exc
        self.stats.sets += 1

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            deleted = await self.backend.delete(*(self._k(k) for k in keys))
        except _BACKEND_ERRORS as exc:
            raise self._fail("delete", ",".join(keys), exc) from exc
        self.stats.deletes += deleted
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        try:
            deleted = await self.backend.delete_pattern(self._k(pattern))
        except _BACKEND_ERRORS as exc:
            raise self._fail("delete", pattern, exc) from exc
        self.stats.deletes += deleted
        return deleted

    async def invalidate_collection(self, language: str, folder: str, filename: str) -> None:
        """Drop the per-file keys and collection listings after a row changes."""
        await self.delete(*collection_keys(language, folder, filename))
        await self.delete_pattern(list_pattern("collections"))

    async def invalidate_table(self, table: str) -> None:
        """Drop cached listings and files of a flat table after any of its rows change."""
        await self.delete_pattern(list_pattern(table))
        await self.delete_pattern(flat_file_pattern(table))

    async def flush(self) -> int:
        """Delete every key in this cache's namespace."""
        deleted = await self.delete_pattern("*")
        logger.info("Cache namespace %s flushed (%d keys)", self.namespace, deleted)
        return deleted

    async def ping(self) -> bool:
        try:
            return await self.backend.ping()
        except _BACKEND_ERRORS as exc:
            self._fail("ping", "-", exc)
            return False

    async def close(self) -> None:
        await self.backend.close()

    def stats_dict(self) -> dict[str, Any]:
        return asdict(self.stats)
