"""Content store access: upserts, lookups, listings and table maintenance."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from langcms.exceptions import StorageError
from langcms.filesystem.classifier import BINARY_TABLES, COLLECTIONS_TABLE, CONTENT_TABLES
from langcms.filesystem.scanner import strip_json_suffix
from langcms.models import TABLE_MODELS, Collection, SyncManifest
from langcms.services.datetime_service import format_iso

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from sqlalchemy.ext.asyncio import AsyncSession

    from langcms.models.base import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Keeps multi-row VALUES under SQLite's bound-parameter limit.
_UPSERT_CHUNK = 200

_CONFLICT_COLUMNS: dict[str, tuple[str, ...]] = {
    COLLECTIONS_TABLE: ("language", "type", "filename"),
}
_NEVER_OVERWRITTEN = frozenset({"id", "created_at"})


def model_for_table(table: str) -> type[Base]:
    """Return the ORM model for a content table name."""
    try:
        return TABLE_MODELS[table]
    except KeyError:
        raise ValueError(
            f"Unknown table {table!r}. Expected one of: {', '.join(CONTENT_TABLES)}"
        ) from None


def _insert(session: AsyncSession, model: type[Base]) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported on {dialect}")


async def guarded(awaitable: Awaitable[T], *, operation: str, timeout: float | None = None) -> T:
    """Await a database call, converting failures and timeouts to StorageError."""
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        raise StorageError(operation, f"timed out after {timeout}s") from exc
    except SQLAlchemyError as exc:
        raise StorageError(operation, str(exc)) from exc


async def upsert_rows(session: AsyncSession, table: str, rows: list[dict[str, Any]]) -> int:
    """Insert rows or overwrite the existing ones sharing the unique key.

    Last write wins: every column except ``id`` and ``created_at`` is replaced.
    Does not commit.
    """
    if not rows:
        return 0
    model = model_for_table(table)
    conflict_cols = _CONFLICT_COLUMNS.get(table, ("filename",))
    for start in range(0, len(rows), _UPSERT_CHUNK):
        chunk = rows[start : start + _UPSERT_CHUNK]
        stmt = _insert(session, model).values(chunk)
        update_cols = {
            name: stmt.excluded[name]
            for name in chunk[0]
            if name not in conflict_cols and name not in _NEVER_OVERWRITTEN
        }
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_cols), set_=update_cols)
        await session.execute(stmt)
    return len(rows)


async def upsert_manifest(session: AsyncSession, entries: list[dict[str, Any]]) -> int:
    """Write or overwrite one manifest row per file path.  Does not commit."""
    if not entries:
        return 0
    for start in range(0, len(entries), _UPSERT_CHUNK):
        chunk = entries[start : start + _UPSERT_CHUNK]
        stmt = _insert(session, SyncManifest).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=["file_path"],
            set_={
                "file_hash": stmt.excluded.file_hash,
                "table_name": stmt.excluded.table_name,
                "last_synced": stmt.excluded.last_synced,
            },
        )
        await session.execute(stmt)
    return len(entries)


async def get_manifest_rows(session: AsyncSession) -> list[SyncManifest]:
    result = await session.execute(select(SyncManifest).order_by(SyncManifest.file_path))
    return list(result.scalars().all())


async def get_collection(
    session: AsyncSession, language: str, folder: str, filename: str
) -> Collection | None:
    """Fetch the single current row for a collection file."""
    stmt = (
        select(Collection)
        .where(
            Collection.language == language,
            Collection.type == folder,
            Collection.filename == strip_json_suffix(filename),
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_by_filename(session: AsyncSession, table: str, filename: str) -> Base | None:
    """Fetch a flat-table row by filename, trying ``filename.json`` second."""
    model = model_for_table(table)
    candidates = [filename]
    if not filename.endswith(".json"):
        candidates.append(f"{filename}.json")
    for candidate in candidates:
        stmt = (
            select(model)
            .where(model.filename == candidate)  # type: ignore[attr-defined]
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return row
    return None


async def list_languages(session: AsyncSession) -> list[str]:
    stmt = select(Collection.language).distinct().order_by(Collection.language)
    result = await session.execute(stmt)
    return [str(lang) for lang in result.scalars().all()]


async def list_collection_files(
    session: AsyncSession, language: str, folder: str | None = None
) -> list[dict[str, str]]:
    stmt = select(Collection.type, Collection.filename).where(Collection.language == language)
    if folder is not None:
        stmt = stmt.where(Collection.type == folder)
    stmt = stmt.order_by(Collection.type, Collection.filename)
    result = await session.execute(stmt)
    return [{"type": row.type, "filename": row.filename} for row in result.all()]


def row_to_dict(row: Base, *, include_content: bool = True) -> dict[str, Any]:
    """Serialize an ORM row to JSON-safe primitives.

    Binary payloads are never serialized; only their size is reported.
    """
    data: dict[str, Any] = {}
    for column in row.__table__.columns:
        name = column.name
        if name == "data":
            continue
        if not include_content and name in ("content", "text_content"):
            continue
        value = getattr(row, name)
        if hasattr(value, "isoformat"):
            value = format_iso(value)
        data[name] = value
    return data


async def table_counts(session: AsyncSession) -> dict[str, int]:
    counts: dict[str, int] = {}
    for table in (*CONTENT_TABLES, "sync_manifest"):
        model = SyncManifest if table == "sync_manifest" else model_for_table(table)
        result = await session.execute(select(func.count()).select_from(model))
        counts[table] = int(result.scalar_one())
    return counts


async def list_table_rows(
    session: AsyncSession, table: str, *, limit: int = 50, offset: int = 0
) -> tuple[list[dict[str, Any]], int]:
    """Page through any content table.  Returns (rows, total)."""
    model = model_for_table(table)
    total_result = await session.execute(select(func.count()).select_from(model))
    total = int(total_result.scalar_one())
    stmt = select(model).order_by(model.id).limit(limit).offset(offset)  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    include_content = table not in BINARY_TABLES
    rows = [row_to_dict(r, include_content=include_content) for r in result.scalars().all()]
    return rows, total


async def get_row(session: AsyncSession, table: str, row_id: int) -> Base | None:
    model = model_for_table(table)
    return await session.get(model, row_id)


async def delete_rows_by_path(session: AsyncSession, table: str, file_path: str) -> list[Base]:
    """Delete the rows a source file produced.  Returns the deleted rows."""
    model = model_for_table(table)
    result = await session.execute(
        select(model).where(model.file_path == file_path)  # type: ignore[attr-defined]
    )
    rows = list(result.scalars().all())
    for row in rows:
        await session.delete(row)
    return rows


async def clear_all(session: AsyncSession) -> dict[str, int]:
    """Delete every row of every content table and the manifest.  Commits."""
    deleted: dict[str, int] = {}
    for table in CONTENT_TABLES:
        result = await session.execute(delete(model_for_table(table)))
        deleted[table] = result.rowcount or 0
    result = await session.execute(delete(SyncManifest))
    deleted["sync_manifest"] = result.rowcount or 0
    await session.commit()
    logger.warning("Content store cleared: %s", deleted)
    return deleted
