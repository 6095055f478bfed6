"""Direct content store edits made through the admin API.

Every write here commits first and then invalidates the affected cache keys,
so a reader can never see cached content older than the committed row for
longer than the invalidation takes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from langcms.exceptions import NotFoundError, StorageError
from langcms.filesystem.scanner import hash_content
from langcms.models.content import Collection
from langcms.services.datetime_service import now_utc
from langcms.services.resolver_service import normalize_request
from langcms.services.store_service import get_collection, get_row

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from langcms.cache.service import ContentCache

logger = logging.getLogger(__name__)


@dataclass
class AdminWriteResult:
    """Outcome of an admin write."""

    row: Any
    created: bool = False
    cache_invalidated: bool = True


def serialize_collection(content: Any) -> str:
    """Canonical text form used for hashing admin-edited content."""
    return json.dumps(content, indent=2, ensure_ascii=False)


async def _invalidate_collection(
    cache: ContentCache, language: str, folder: str, filename: str
) -> bool:
    try:
        await cache.invalidate_collection(language, folder, filename)
    except StorageError as exc:
        logger.error(
            "Row for %s/%s/%s committed but cache invalidation failed: %s",
            language,
            folder,
            filename,
            exc,
        )
        return False
    return True


async def save_collection(
    session: AsyncSession,
    cache: ContentCache,
    language: str,
    folder: str,
    filename: str,
    content: Any,
) -> AdminWriteResult:
    """Create or overwrite a collection row, then invalidate its cache keys."""
    language, folder, filename = normalize_request(language, folder, filename)
    now = now_utc()
    content_hash = hash_content(serialize_collection(content))

    row = await get_collection(session, language, folder, filename)
    created = row is None
    if row is None:
        row = Collection(
            language=language,
            type=folder,
            filename=filename,
            content=content,
            content_hash=content_hash,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
    else:
        row.content = content
        row.content_hash = content_hash
        row.updated_at = now
    await session.commit()
    logger.info(
        "Admin %s collection %s/%s/%s", "created" if created else "updated", language, folder, filename
    )

    invalidated = await _invalidate_collection(cache, language, folder, filename)
    return AdminWriteResult(row=row, created=created, cache_invalidated=invalidated)


async def delete_collection(
    session: AsyncSession,
    cache: ContentCache,
    language: str,
    folder: str,
    filename: str,
) -> AdminWriteResult:
    """Delete a collection row, then invalidate its cache keys.

    The source file, if any, is left alone; a later pump will recreate the row.
    """
    language, folder, filename = normalize_request(language, folder, filename)
    row = await get_collection(session, language, folder, filename)
    if row is None:
        raise NotFoundError(
            f"Collection not found: {language}/{folder}/{filename}", tiers_tried=["database"]
        )
    await session.delete(row)
    await session.commit()
    logger.info("Admin deleted collection %s/%s/%s", language, folder, filename)

    invalidated = await _invalidate_collection(cache, language, folder, filename)
    return AdminWriteResult(row=row, cache_invalidated=invalidated)


async def delete_table_row(
    session: AsyncSession, cache: ContentCache, table: str, row_id: int
) -> AdminWriteResult:
    """Delete one row of any content table by primary key."""
    row = await get_row(session, table, row_id)
    if row is None:
        raise NotFoundError(f"No row {row_id} in {table}", tiers_tried=["database"])
    await session.delete(row)
    await session.commit()
    logger.info("Admin deleted %s row %d", table, row_id)

    if isinstance(row, Collection):
        invalidated = await _invalidate_collection(cache, row.language, row.type, row.filename)
    else:
        try:
            await cache.invalidate_table(table)
            invalidated = True
        except StorageError as exc:
            logger.error("Row deleted from %s but cache invalidation failed: %s", table, exc)
            invalidated = False
    return AdminWriteResult(row=row, cache_invalidated=invalidated)


async def invalidate_collection_cache(
    cache: ContentCache, language: str, folder: str, filename: str
) -> None:
    """Drop one file's cache keys without touching the database."""
    language, folder, filename = normalize_request(language, folder, filename)
    await cache.invalidate_collection(language, folder, filename)
