"""Read-through resolution of content files: cache, then database, then filesystem.

Binary assets skip the cache tier and are served from the database row, or
from the source tree when the row stores them by reference.
"""

from __future__ import annotations

import json
import logging
import mimetypes
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from langcms.cache.keys import (
    collection_key,
    collection_meta_key,
    flat_file_key,
    list_key,
    validate_segment,
)
from langcms.cache.service import MISS
from langcms.exceptions import NotFoundError, StorageError
from langcms.filesystem.classifier import (
    BINARY_TABLES,
    FLAT_TEXT_TABLES,
    TABLE_FOLDERS,
    file_extension,
)
from langcms.filesystem.scanner import COLLECTION_FOLDERS, TEXT_EXTENSIONS, strip_json_suffix
from langcms.services.datetime_service import format_iso
from langcms.services.store_service import (
    get_by_filename,
    get_collection,
    guarded,
    list_collection_files,
    list_languages,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from langcms.cache.service import ContentCache
    from langcms.filesystem.source_manager import SourceManager
    from langcms.models.content import Collection

logger = logging.getLogger(__name__)


class SourceTier(StrEnum):
    """Where a resolved value came from, in resolution order."""

    CACHE = "cache"
    DATABASE = "database"
    FILESYSTEM = "filesystem"


@dataclass
class ResolvedFile:
    """Outcome of a successful lookup."""

    language: str
    folder: str
    filename: str
    content: Any
    source_tier: SourceTier
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResolvedAsset:
    """Bytes of an image or resume and the tier that served them."""

    table: str
    filename: str
    data: bytes
    mime_type: str
    source_tier: SourceTier


@dataclass
class ResolvedFlatFile:
    """A config, data, static or javascript file."""

    table: str
    filename: str
    file_type: str
    content: Any
    text_content: str | None
    source_tier: SourceTier


def validate_flat_request(table: str, filename: str, allowed: tuple[str, ...]) -> None:
    """Reject unknown tables and any filename that is not a single plain segment."""
    if table not in allowed:
        raise ValueError(f"Invalid table {table!r}. Must be one of: {', '.join(allowed)}")
    if ".." in filename:
        raise ValueError(f"Invalid filename: {filename!r}")
    validate_segment(filename, "filename")


def normalize_request(language: str, folder: str, filename: str) -> tuple[str, str, str]:
    """Validate the lookup triple and strip any ``.json`` suffix."""
    if folder not in COLLECTION_FOLDERS:
        raise ValueError(f"Invalid folder {folder!r}. Must be one of: {', '.join(COLLECTION_FOLDERS)}")
    validate_segment(language, "language")
    name = validate_segment(strip_json_suffix(filename), "filename")
    return language, folder, name


def collection_metadata(row: Collection) -> dict[str, Any]:
    return {
        "id": row.id,
        "language": row.language,
        "type": row.type,
        "filename": row.filename,
        "file_path": row.file_path,
        "content_hash": row.content_hash,
        "updated_at": format_iso(row.updated_at),
        "synced_at": format_iso(row.synced_at) if row.synced_at else None,
    }


class Resolver:
    """Resolves ``(language, folder, filename)`` through the three tiers.

    Each tier is tried at most once per lookup.  Cache and database failures
    are logged and treated as misses; only exhausting every tier raises
    NotFoundError.
    """

    def __init__(
        self,
        cache: ContentCache,
        source: SourceManager,
        *,
        db_timeout: float | None = None,
        warm_from_filesystem: bool = True,
    ) -> None:
        self.cache = cache
        self.source = source
        self.db_timeout = db_timeout
        self.warm_from_filesystem = warm_from_filesystem

    async def _cache_get(self, key: str) -> Any:
        try:
            return await self.cache.get_json(key)
        except StorageError:
            return MISS

    async def _cache_put(self, key: str, value: Any, ttl: int) -> None:
        # Fire-and-forget: the read succeeds even if the write does not.
        try:
            await self.cache.set_json(key, value, ttl)
        except StorageError as exc:
            logger.warning("Could not populate cache key %s: %s", key, exc)

    async def _db_get(
        self, session: AsyncSession, language: str, folder: str, filename: str
    ) -> Collection | None:
        try:
            return await guarded(
                get_collection(session, language, folder, filename),
                operation="collection lookup",
                timeout=self.db_timeout,
            )
        except StorageError as exc:
            logger.warning("Database tier failed for %s/%s/%s: %s", language, folder, filename, exc)
            await session.rollback()
            return None

    def _fs_get(self, language: str, folder: str, filename: str) -> Any:
        try:
            content = self.source.read_collection(language, folder, filename)
        except (ValueError, OSError) as exc:
            logger.warning("Filesystem tier failed for %s/%s/%s: %s", language, folder, filename, exc)
            return MISS
        return MISS if content is None else content

    async def resolve_file(
        self,
        session: AsyncSession,
        language: str,
        folder: str,
        filename: str,
        *,
        metadata_only: bool = False,
    ) -> ResolvedFile:
        """Return the current content (or metadata) for one collection file."""
        language, folder, filename = normalize_request(language, folder, filename)
        key = (
            collection_meta_key(language, folder, filename)
            if metadata_only
            else collection_key(language, folder, filename)
        )
        tiers_tried: list[str] = []

        tiers_tried.append(SourceTier.CACHE)
        cached = await self._cache_get(key)
        if cached is not MISS:
            if metadata_only:
                return ResolvedFile(language, folder, filename, None, SourceTier.CACHE, cached)
            return ResolvedFile(language, folder, filename, cached, SourceTier.CACHE)

        tiers_tried.append(SourceTier.DATABASE)
        row = await self._db_get(session, language, folder, filename)
        if row is not None:
            metadata = collection_metadata(row)
            if metadata_only:
                await self._cache_put(key, metadata, self.cache.content_ttl)
                return ResolvedFile(language, folder, filename, None, SourceTier.DATABASE, metadata)
            await self._cache_put(key, row.content, self.cache.content_ttl)
            return ResolvedFile(
                language, folder, filename, row.content, SourceTier.DATABASE, metadata
            )

        tiers_tried.append(SourceTier.FILESYSTEM)
        rel_path = self.source.collection_path(language, folder, filename)
        content = self._fs_get(language, folder, filename)
        if content is not MISS:
            metadata = {"language": language, "type": folder, "filename": filename,
                        "file_path": rel_path}
            if metadata_only:
                return ResolvedFile(
                    language, folder, filename, None, SourceTier.FILESYSTEM, metadata
                )
            if self.warm_from_filesystem:
                await self._cache_put(key, content, self.cache.content_ttl)
            return ResolvedFile(
                language, folder, filename, content, SourceTier.FILESYSTEM, metadata
            )

        logger.info("Not found in any tier: %s/%s/%s", language, folder, filename)
        raise NotFoundError(
            f"Collection not found: {language}/{folder}/{filename}",
            tiers_tried=[str(t) for t in tiers_tried],
            cache_key=key,
            path=rel_path,
        )

    async def _cached_listing(self, key: str, loader: Any) -> Any:
        cached = await self._cache_get(key)
        if cached is not MISS:
            return cached
        value = await loader()
        await self._cache_put(key, value, self.cache.list_ttl)
        return value

    async def languages(self, session: AsyncSession) -> list[str]:
        """Languages known to the database, or to the filesystem if it has none."""

        async def load() -> list[str]:
            try:
                langs = await guarded(
                    list_languages(session), operation="list languages", timeout=self.db_timeout
                )
            except StorageError as exc:
                logger.warning("Falling back to filesystem for languages: %s", exc)
                await session.rollback()
                langs = []
            return langs or self.source.list_languages()

        result: list[str] = await self._cached_listing(list_key("collections", "languages"), load)
        return result

    async def collection_files(
        self, session: AsyncSession, language: str, folder: str | None = None
    ) -> list[dict[str, str]]:
        """Files available for a language, optionally restricted to one folder."""
        validate_segment(language, "language")
        if folder is not None and folder not in COLLECTION_FOLDERS:
            raise ValueError(f"Invalid folder {folder!r}")

        async def load() -> list[dict[str, str]]:
            try:
                files = await guarded(
                    list_collection_files(session, language, folder),
                    operation="list collection files",
                    timeout=self.db_timeout,
                )
            except StorageError as exc:
                logger.warning("Falling back to filesystem for %s listing: %s", language, exc)
                await session.rollback()
                files = []
            return files or self.source.list_collection_files(language, folder)

        qualifier = f"{language}:{folder or '*'}"
        result: list[dict[str, str]] = await self._cached_listing(
            list_key("collections", qualifier), load
        )
        return result

    def _fs_read(self, rel_path: str) -> bytes | None:
        try:
            return self.source.read_bytes(rel_path)
        except (ValueError, OSError) as exc:
            logger.warning("Filesystem tier failed for %s: %s", rel_path, exc)
            return None

    async def _db_get_by_filename(
        self, session: AsyncSession, table: str, filename: str
    ) -> Any | None:
        try:
            return await guarded(
                get_by_filename(session, table, filename),
                operation=f"{table} lookup",
                timeout=self.db_timeout,
            )
        except StorageError as exc:
            logger.warning("Database tier failed for %s/%s: %s", table, filename, exc)
            await session.rollback()
            return None

    async def resolve_asset(
        self, session: AsyncSession, table: str, filename: str
    ) -> ResolvedAsset:
        """Return the bytes of an image or resume.

        A row without inline ``data`` is read from its ``file_path``.  With no
        row at all the source folder is tried directly.
        """
        validate_flat_request(table, filename, BINARY_TABLES)

        row = await self._db_get_by_filename(session, table, filename)
        if row is not None:
            data = row.data if row.data is not None else self._fs_read(row.file_path)
            if data is not None:
                return ResolvedAsset(table, row.filename, data, row.mime_type, SourceTier.DATABASE)

        rel_path = self.source.flat_path(TABLE_FOLDERS[table], filename)
        data = self._fs_read(rel_path)
        if data is not None:
            mime_type, _ = mimetypes.guess_type(filename)
            return ResolvedAsset(
                table,
                filename,
                data,
                mime_type or "application/octet-stream",
                SourceTier.FILESYSTEM,
            )

        logger.info("Asset not found: %s/%s", table, filename)
        raise NotFoundError(
            f"Asset not found: {table}/{filename}",
            tiers_tried=[str(SourceTier.DATABASE), str(SourceTier.FILESYSTEM)],
            path=rel_path,
        )

    def _fs_flat_file(self, table: str, filename: str) -> dict[str, Any] | None:
        folder = TABLE_FOLDERS[table]
        candidates = [filename]
        if not filename.endswith(".json"):
            candidates.append(f"{filename}.json")
        for name in candidates:
            raw = self._fs_read(self.source.flat_path(folder, name))
            if raw is None:
                continue
            file_type = file_extension(name)
            content: Any = None
            text_content: str | None = None
            try:
                if file_type == "json":
                    content = json.loads(raw.decode("utf-8"))
                elif file_type in TEXT_EXTENSIONS:
                    text_content = raw.decode("utf-8")
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                logger.warning("Filesystem tier failed for %s/%s: %s", folder, name, exc)
                return None
            return {
                "filename": name,
                "file_type": file_type,
                "content": content,
                "text_content": text_content,
            }
        return None

    async def resolve_flat_file(
        self, session: AsyncSession, table: str, filename: str
    ) -> ResolvedFlatFile:
        """Resolve a config, data, static or javascript file by filename.

        ``items`` and ``items.json`` both find ``items.json``.
        """
        validate_flat_request(table, filename, FLAT_TEXT_TABLES)
        key = flat_file_key(table, filename)

        def resolved(payload: dict[str, Any], tier: SourceTier) -> ResolvedFlatFile:
            return ResolvedFlatFile(
                table,
                payload["filename"],
                payload["file_type"],
                payload["content"],
                payload["text_content"],
                tier,
            )

        cached = await self._cache_get(key)
        if cached is not MISS:
            return resolved(cached, SourceTier.CACHE)

        row = await self._db_get_by_filename(session, table, filename)
        if row is not None:
            payload = {
                "filename": row.filename,
                "file_type": row.file_type,
                "content": row.content,
                "text_content": row.text_content,
            }
            await self._cache_put(key, payload, self.cache.content_ttl)
            return resolved(payload, SourceTier.DATABASE)

        fs_payload = self._fs_flat_file(table, filename)
        if fs_payload is not None:
            if self.warm_from_filesystem:
                await self._cache_put(key, fs_payload, self.cache.content_ttl)
            return resolved(fs_payload, SourceTier.FILESYSTEM)

        logger.info("Not found in any tier: %s/%s", table, filename)
        raise NotFoundError(
            f"File not found: {table}/{filename}",
            tiers_tried=[str(t) for t in SourceTier],
            cache_key=key,
            path=self.source.flat_path(TABLE_FOLDERS[table], filename),
        )
