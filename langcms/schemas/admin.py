"""Admin API request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AdminCollectionResponse(BaseModel):
    """Result of an admin collection write."""

    language: str
    folder: str
    filename: str
    content_hash: str | None = None
    created: bool = False
    cache_invalidated: bool = True


class TableCountsResponse(BaseModel):
    tables: dict[str, int]


class TableRowsResponse(BaseModel):
    """One page of rows from a content table."""

    table: str
    rows: list[dict[str, Any]]
    total: int
    limit: int
    offset: int


class RowDeletedResponse(BaseModel):
    table: str
    id: int
    cache_invalidated: bool = True


class CacheStatsResponse(BaseModel):
    """Cache counters and backend reachability."""

    backend: str
    namespace: str
    reachable: bool
    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    last_error: str | None = None


class CacheFlushResponse(BaseModel):
    keys_deleted: int = Field(ge=0)
