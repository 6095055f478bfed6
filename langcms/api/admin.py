"""Admin API endpoints: direct collection edits, table browser and cache control."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from langcms.api.deps import get_cache, get_session, require_admin
from langcms.cache.service import ContentCache
from langcms.schemas.admin import (
    AdminCollectionResponse,
    CacheFlushResponse,
    CacheStatsResponse,
    RowDeletedResponse,
    TableCountsResponse,
    TableRowsResponse,
)
from langcms.schemas.collections import CollectionWrite
from langcms.services import admin_service
from langcms.services.store_service import list_table_rows, table_counts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.put("/collections/{language}/{folder}/{filename}", response_model=AdminCollectionResponse)
async def put_collection(
    language: str,
    folder: str,
    filename: str,
    body: CollectionWrite,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> AdminCollectionResponse:
    """Create or replace a collection row and invalidate its cache keys."""
    result = await admin_service.save_collection(
        session, cache, language, folder, filename, body.content
    )
    return AdminCollectionResponse(
        language=result.row.language,
        folder=result.row.type,
        filename=result.row.filename,
        content_hash=result.row.content_hash,
        created=result.created,
        cache_invalidated=result.cache_invalidated,
    )


@router.delete(
    "/collections/{language}/{folder}/{filename}", response_model=AdminCollectionResponse
)
async def delete_collection(
    language: str,
    folder: str,
    filename: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> AdminCollectionResponse:
    """Delete a collection row and invalidate its cache keys."""
    result = await admin_service.delete_collection(session, cache, language, folder, filename)
    return AdminCollectionResponse(
        language=result.row.language,
        folder=result.row.type,
        filename=result.row.filename,
        content_hash=result.row.content_hash,
        cache_invalidated=result.cache_invalidated,
    )


@router.get("/tables", response_model=TableCountsResponse)
async def get_table_counts(
    session: Annotated[AsyncSession, Depends(get_session)],
    admin: Annotated[str, Depends(require_admin)],
) -> TableCountsResponse:
    """Row counts for every content table and the manifest."""
    return TableCountsResponse(tables=await table_counts(session))


@router.get("/tables/{table}", response_model=TableRowsResponse)
async def get_table_rows(
    table: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    admin: Annotated[str, Depends(require_admin)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> TableRowsResponse:
    """Page through any content table.  Binary payloads are omitted."""
    rows, total = await list_table_rows(session, table, limit=limit, offset=offset)
    return TableRowsResponse(table=table, rows=rows, total=total, limit=limit, offset=offset)


@router.delete("/tables/{table}/{row_id}", response_model=RowDeletedResponse)
async def delete_table_row(
    table: str,
    row_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> RowDeletedResponse:
    """Delete one row by id and invalidate what it fed."""
    result = await admin_service.delete_table_row(session, cache, table, row_id)
    return RowDeletedResponse(table=table, id=row_id, cache_invalidated=result.cache_invalidated)


@router.get("/cache", response_model=CacheStatsResponse)
async def get_cache_stats(
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> CacheStatsResponse:
    """Cache counters since process start and backend reachability."""
    return CacheStatsResponse(
        backend=type(cache.backend).__name__,
        namespace=cache.namespace,
        reachable=await cache.ping(),
        **cache.stats_dict(),
    )


@router.delete("/cache", response_model=CacheFlushResponse)
async def flush_cache(
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> CacheFlushResponse:
    """Delete every key in the cache namespace."""
    logger.warning("Cache flush requested by %s", admin)
    return CacheFlushResponse(keys_deleted=await cache.flush())


@router.delete("/cache/collections/{language}/{folder}/{filename}", status_code=204)
async def invalidate_collection(
    language: str,
    folder: str,
    filename: str,
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> None:
    """Drop one collection file's cache keys."""
    await admin_service.invalidate_collection_cache(cache, language, folder, filename)
