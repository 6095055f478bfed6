"""Sync pipeline response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SyncErrorItem(BaseModel):
    path: str
    table: str
    kind: str
    message: str


class DiffResponse(BaseModel):
    """Changes between the source tree and the manifest."""

    new: list[str]
    modified: list[str]
    deleted: list[str]
    unchanged_count: int
    files_scanned: int


class PumpResponse(BaseModel):
    """Result of a full pump."""

    files_scanned: int
    tables_loaded: dict[str, int]
    errors: list[SyncErrorItem] = Field(default_factory=list)
    started_at: str
    finished_at: str | None = None


class PullResponse(BaseModel):
    """Result of an incremental pull."""

    applied: int
    failed: int
    deleted: int
    errors: list[SyncErrorItem] = Field(default_factory=list)
    diff: DiffResponse
    started_at: str
    finished_at: str | None = None


class ClearResponse(BaseModel):
    tables_cleared: int
    rows_deleted: dict[str, int]
    cache_flushed: bool


class LockState(BaseModel):
    locked: bool
    holder: str | None = None
    expires_at: str | None = None


class SyncStatusResponse(BaseModel):
    """Last recorded run plus the current lease."""

    last_result: dict[str, object] | None = None
    lock: LockState
