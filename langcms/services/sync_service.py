"""Sync service: source scanning, manifest comparison and content store pumping."""

from __future__ import annotations

import json
import logging
import mimetypes
import posixpath
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from langcms.cache.keys import LAST_SYNC_KEY, validate_segment
from langcms.cache.service import MISS
from langcms.exceptions import StorageError
from langcms.filesystem.classifier import (
    BINARY_TABLES,
    COLLECTIONS_TABLE,
    CONTENT_TABLES,
)
from langcms.filesystem.scanner import COLLECTION_FOLDERS, ScannedFile, collection_key_from_path
from langcms.models.sync import SyncManifest
from langcms.services.datetime_service import format_iso, now_utc
from langcms.services.store_service import (
    clear_all,
    delete_rows_by_path,
    get_manifest_rows,
    upsert_manifest,
    upsert_rows,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from langcms.cache.service import ContentCache
    from langcms.filesystem.source_manager import SourceManager

logger = logging.getLogger(__name__)


class ChangeStatus(StrEnum):
    """State of a source file relative to the manifest."""

    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


class ErrorKind(StrEnum):
    PARSE = "parse"
    STORAGE = "storage"
    CACHE = "cache"
    LAYOUT = "layout"
    DUPLICATE = "duplicate"


@dataclass
class FileEntry:
    """A file's identity for change detection."""

    file_path: str
    content_hash: str
    table_name: str


@dataclass
class FileChange:
    """A single change between the manifest and the source tree."""

    file_path: str
    status: ChangeStatus
    table_name: str
    content_hash: str


@dataclass
class SyncDiff:
    """The computed difference between manifest and source tree."""

    new: list[FileChange] = field(default_factory=list)
    modified: list[FileChange] = field(default_factory=list)
    deleted: list[FileChange] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def files_scanned(self) -> int:
        return len(self.new) + len(self.modified) + len(self.unchanged)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_scanned": self.files_scanned,
            "new": [c.file_path for c in self.new],
            "modified": [c.file_path for c in self.modified],
            "deleted": [c.file_path for c in self.deleted],
            "unchanged_count": len(self.unchanged),
        }


@dataclass
class SyncError:
    """A per-file or per-table failure collected during a run."""

    path: str
    table: str
    kind: ErrorKind
    message: str


@dataclass
class PumpReport:
    """Summary of a full pump run."""

    files_scanned: int = 0
    tables_loaded: dict[str, int] = field(default_factory=dict)
    errors: list[SyncError] = field(default_factory=list)
    started_at: datetime = field(default_factory=now_utc)
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": "pump",
            "files_scanned": self.files_scanned,
            "tables_loaded": dict(self.tables_loaded),
            "errors": [asdict(e) for e in self.errors],
            "started_at": format_iso(self.started_at),
            "finished_at": format_iso(self.finished_at) if self.finished_at else None,
        }


@dataclass
class PullReport:
    """Summary of an incremental pull run."""

    applied: int = 0
    failed: int = 0
    deleted: int = 0
    errors: list[SyncError] = field(default_factory=list)
    diff: SyncDiff = field(default_factory=SyncDiff)
    started_at: datetime = field(default_factory=now_utc)
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": "pull",
            "applied": self.applied,
            "failed": self.failed,
            "deleted": self.deleted,
            "errors": [asdict(e) for e in self.errors],
            "diff": self.diff.to_dict(),
            "started_at": format_iso(self.started_at),
            "finished_at": format_iso(self.finished_at) if self.finished_at else None,
        }


@dataclass
class ClearReport:
    """Summary of a full content store reset."""

    tables_cleared: int
    rows_deleted: dict[str, int]
    cache_flushed: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_diff(manifest: dict[str, FileEntry], scanned: dict[str, FileEntry]) -> SyncDiff:
    """Classify every path as new, modified, unchanged or deleted.

    ``new``: in scanned, not in manifest.  ``deleted``: in manifest, not in
    scanned.  ``modified``: in both with differing hashes.
    """
    result = SyncDiff()
    for path in sorted(set(manifest) | set(scanned)):
        current = scanned.get(path)
        previous = manifest.get(path)
        if current is not None and previous is None:
            result.new.append(
                FileChange(path, ChangeStatus.NEW, current.table_name, current.content_hash)
            )
        elif current is None and previous is not None:
            result.deleted.append(
                FileChange(path, ChangeStatus.DELETED, previous.table_name, previous.content_hash)
            )
        elif current is not None and previous is not None:
            if current.content_hash != previous.content_hash:
                result.modified.append(
                    FileChange(
                        path, ChangeStatus.MODIFIED, current.table_name, current.content_hash
                    )
                )
            else:
                result.unchanged.append(path)
    return result


def entries_from_scan(scanned: dict[str, ScannedFile]) -> dict[str, FileEntry]:
    return {
        path: FileEntry(file_path=path, content_hash=f.hash, table_name=f.table)
        for path, f in scanned.items()
    }


async def get_manifest(session: AsyncSession) -> dict[str, FileEntry]:
    """Load the sync manifest from DB."""
    return {
        row.file_path: FileEntry(
            file_path=row.file_path,
            content_hash=row.file_hash,
            table_name=row.table_name,
        )
        for row in await get_manifest_rows(session)
    }


def _parse_json(f: ScannedFile) -> Any:
    text = f.content if isinstance(f.content, str) else f.content.decode("utf-8")
    return json.loads(text)


def build_row(
    f: ScannedFile, now: datetime, inline_asset_max_bytes: int
) -> tuple[dict[str, Any] | None, SyncError | None]:
    """Turn a scanned file into a row for its table.

    Returns (row, None) on success and (None, error) when the file cannot be
    stored: malformed JSON, or a collection path missing language/type.
    """
    stamps = {"created_at": now, "updated_at": now, "synced_at": now}
    rel = f.relative_path

    if f.table == COLLECTIONS_TABLE:
        key = collection_key_from_path(rel)
        if key is None:
            return None, SyncError(
                rel, f.table, ErrorKind.LAYOUT, "expected collections/{language}/{type}/{file}"
            )
        if key.type not in COLLECTION_FOLDERS:
            return None, SyncError(
                rel, f.table, ErrorKind.LAYOUT, f"unsupported collection type {key.type!r}"
            )
        try:
            validate_segment(key.language, "language")
            validate_segment(key.filename, "filename")
        except ValueError as exc:
            return None, SyncError(rel, f.table, ErrorKind.LAYOUT, str(exc))
        try:
            content = _parse_json(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return None, SyncError(rel, f.table, ErrorKind.PARSE, str(exc))
        return {
            "language": key.language,
            "type": key.type,
            "filename": key.filename,
            "file_path": rel,
            "content": content,
            "content_hash": f.hash,
            **stamps,
        }, None

    filename = posixpath.basename(rel)

    if f.table in BINARY_TABLES:
        payload = f.content.encode("utf-8") if isinstance(f.content, str) else f.content
        mime_type, _ = mimetypes.guess_type(filename)
        return {
            "filename": filename,
            "file_path": rel,
            "file_type": f.file_type,
            "mime_type": mime_type or "application/octet-stream",
            "content_hash": f.hash,
            "size_bytes": len(payload),
            "data": payload if len(payload) <= inline_asset_max_bytes else None,
            **stamps,
        }, None

    content: Any = None
    text_content: str | None = None
    if f.file_type == "json":
        try:
            content = _parse_json(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return None, SyncError(rel, f.table, ErrorKind.PARSE, str(exc))
    elif isinstance(f.content, str):
        text_content = f.content
    return {
        "filename": filename,
        "file_path": rel,
        "file_type": f.file_type,
        "content": content,
        "text_content": text_content,
        "content_hash": f.hash,
        **stamps,
    }, None


def _unique_key(table: str, row: dict[str, Any]) -> tuple[str, ...]:
    if table == COLLECTIONS_TABLE:
        return (row["language"], row["type"], row["filename"])
    return (row["filename"],)


def _manifest_row(f: ScannedFile, now: datetime) -> dict[str, Any]:
    return {
        "file_path": f.relative_path,
        "file_hash": f.hash,
        "table_name": f.table,
        "last_synced": now,
    }


async def _invalidate_rows(
    cache: ContentCache, table: str, rows: list[dict[str, Any]], errors: list[SyncError]
) -> None:
    """Drop cache keys for rows just written; failures are recorded, not raised."""
    try:
        if table == COLLECTIONS_TABLE:
            for row in rows:
                await cache.invalidate_collection(row["language"], row["type"], row["filename"])
        else:
            await cache.invalidate_table(table)
    except StorageError as exc:
        errors.append(SyncError("*", table, ErrorKind.CACHE, str(exc)))


async def pump(
    session: AsyncSession,
    source: SourceManager,
    cache: ContentCache,
    *,
    inline_asset_max_bytes: int = 1024 * 1024,
) -> PumpReport:
    """Copy the whole source tree into the content store.

    Each table is upserted inside its own savepoint so one failing table does
    not stop the others.  Every scanned file gets a manifest entry, including
    files that failed to parse or whose table failed to load.
    """
    report = PumpReport()
    scanned = source.scan()
    report.files_scanned = len(scanned)
    now = now_utc()

    groups: dict[str, dict[tuple[str, ...], dict[str, Any]]] = defaultdict(dict)
    for f in scanned.values():
        row, error = build_row(f, now, inline_asset_max_bytes)
        if error is not None:
            logger.warning("Skipping %s: %s", error.path, error.message)
            report.errors.append(error)
            continue
        if row is None:
            continue
        key = _unique_key(f.table, row)
        previous = groups[f.table].get(key)
        if previous is not None:
            report.errors.append(
                SyncError(
                    f.relative_path,
                    f.table,
                    ErrorKind.DUPLICATE,
                    f"same key as {previous['file_path']}; later path wins",
                )
            )
        groups[f.table][key] = row

    for table in CONTENT_TABLES:
        rows = list(groups.get(table, {}).values())
        if not rows:
            continue
        try:
            async with session.begin_nested():
                report.tables_loaded[table] = await upsert_rows(session, table, rows)
        except SQLAlchemyError as exc:
            logger.error("Failed to load table %s: %s", table, exc)
            report.errors.append(SyncError("*", table, ErrorKind.STORAGE, str(exc)))
            continue
        logger.info("Loaded %d rows into %s", len(rows), table)

    try:
        async with session.begin_nested():
            await upsert_manifest(session, [_manifest_row(f, now) for f in scanned.values()])
    except SQLAlchemyError as exc:
        logger.error("Failed to write sync manifest: %s", exc)
        report.errors.append(SyncError("*", "sync_manifest", ErrorKind.STORAGE, str(exc)))
    await session.commit()

    for table, count in report.tables_loaded.items():
        if count:
            await _invalidate_rows(cache, table, list(groups[table].values()), report.errors)

    report.finished_at = now_utc()
    logger.info(
        "Pump finished: %d files scanned, tables=%s, %d errors",
        report.files_scanned,
        report.tables_loaded,
        len(report.errors),
    )
    await store_last_report(cache, report.to_dict())
    return report


async def diff(session: AsyncSession, source: SourceManager) -> SyncDiff:
    """Compare a fresh scan with the manifest.  Read-only."""
    scanned = source.scan()
    manifest = await get_manifest(session)
    result = compute_diff(manifest, entries_from_scan(scanned))
    logger.info(
        "Diff: %d new, %d modified, %d deleted, %d unchanged",
        len(result.new),
        len(result.modified),
        len(result.deleted),
        len(result.unchanged),
    )
    return result


async def pull(
    session: AsyncSession,
    source: SourceManager,
    cache: ContentCache,
    *,
    inline_asset_max_bytes: int = 1024 * 1024,
) -> PullReport:
    """Apply only what changed since the last sync, including deletions."""
    report = PullReport()
    scanned = source.scan()
    manifest = await get_manifest(session)
    report.diff = compute_diff(manifest, entries_from_scan(scanned))
    now = now_utc()
    touched: dict[str, list[dict[str, Any]]] = defaultdict(list)

    for change in [*report.diff.new, *report.diff.modified]:
        f = scanned[change.file_path]
        row, error = build_row(f, now, inline_asset_max_bytes)
        if error is not None:
            logger.warning("Skipping %s: %s", error.path, error.message)
            report.errors.append(error)
            report.failed += 1
        try:
            async with session.begin_nested():
                if row is not None:
                    await upsert_rows(session, f.table, [row])
                await upsert_manifest(session, [_manifest_row(f, now)])
        except SQLAlchemyError as exc:
            logger.error("Failed to apply %s: %s", change.file_path, exc)
            report.errors.append(
                SyncError(change.file_path, f.table, ErrorKind.STORAGE, str(exc))
            )
            if error is None:
                report.failed += 1
            continue
        if row is not None:
            report.applied += 1
            touched[f.table].append(row)

    for change in report.diff.deleted:
        try:
            async with session.begin_nested():
                removed = []
                if change.table_name in CONTENT_TABLES:
                    removed = await delete_rows_by_path(
                        session, change.table_name, change.file_path
                    )
                await session.execute(
                    delete(SyncManifest).where(SyncManifest.file_path == change.file_path)
                )
        except SQLAlchemyError as exc:
            logger.error("Failed to delete %s: %s", change.file_path, exc)
            report.errors.append(
                SyncError(change.file_path, change.table_name, ErrorKind.STORAGE, str(exc))
            )
            report.failed += 1
            continue
        report.deleted += 1
        for row in removed:
            if change.table_name == COLLECTIONS_TABLE:
                touched[change.table_name].append(
                    {"language": row.language, "type": row.type, "filename": row.filename}
                )
            else:
                touched[change.table_name].append({"filename": row.filename})

    await session.commit()
    for table, rows in touched.items():
        await _invalidate_rows(cache, table, rows, report.errors)

    report.finished_at = now_utc()
    logger.info(
        "Pull finished: %d applied, %d deleted, %d failed",
        report.applied,
        report.deleted,
        report.failed,
    )
    await store_last_report(cache, report.to_dict())
    return report


async def clear(session: AsyncSession, cache: ContentCache) -> ClearReport:
    """Delete every content store row and the manifest, then flush the cache."""
    rows_deleted = await clear_all(session)
    cache_flushed = True
    try:
        await cache.flush()
    except StorageError as exc:
        logger.error("Content store cleared but cache flush failed: %s", exc)
        cache_flushed = False
    return ClearReport(
        tables_cleared=len(rows_deleted),
        rows_deleted=rows_deleted,
        cache_flushed=cache_flushed,
    )


async def store_last_report(cache: ContentCache, report: dict[str, Any]) -> None:
    try:
        await cache.set_json(LAST_SYNC_KEY, report, ttl=None)
    except StorageError:
        logger.warning("Could not record last sync report", exc_info=True)


async def load_last_report(cache: ContentCache) -> dict[str, Any] | None:
    try:
        value = await cache.get_json(LAST_SYNC_KEY)
    except StorageError:
        return None
    return None if value is MISS else value
