"""Sync API endpoints: diff, pump, pull and clear against the source tree."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from langcms.api.deps import get_cache, get_session, get_settings, get_source_manager, require_admin
from langcms.cache.service import ContentCache
from langcms.config import Settings
from langcms.filesystem.source_manager import SourceManager
from langcms.schemas.sync import (
    ClearResponse,
    DiffResponse,
    LockState,
    PullResponse,
    PumpResponse,
    SyncStatusResponse,
)
from langcms.services import sync_service
from langcms.services.lock_service import lock_status, sync_lease

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    admin: Annotated[str, Depends(require_admin)],
) -> SyncStatusResponse:
    """Report the last pump/pull result and whether a run is in progress."""
    return SyncStatusResponse(
        last_result=await sync_service.load_last_report(cache),
        lock=LockState(**await lock_status(session)),
    )


@router.post("/diff", response_model=DiffResponse)
async def sync_diff(
    session: Annotated[AsyncSession, Depends(get_session)],
    source: Annotated[SourceManager, Depends(get_source_manager)],
    admin: Annotated[str, Depends(require_admin)],
) -> DiffResponse:
    """Compare the source tree with the manifest without writing anything."""
    result = await sync_service.diff(session, source)
    return DiffResponse(**result.to_dict())


@router.post("/pump", response_model=PumpResponse)
async def sync_pump(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    source: Annotated[SourceManager, Depends(get_source_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    admin: Annotated[str, Depends(require_admin)],
) -> PumpResponse:
    """Load the whole source tree into the content store."""
    async with sync_lease(
        request.app.state.session_factory, ttl_seconds=settings.pump_lock_ttl_seconds
    ):
        logger.info("Pump requested by %s", admin)
        report = await sync_service.pump(
            session, source, cache, inline_asset_max_bytes=settings.inline_asset_max_bytes
        )
    return PumpResponse(**report.to_dict())


@router.post("/pull", response_model=PullResponse)
async def sync_pull(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    source: Annotated[SourceManager, Depends(get_source_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    admin: Annotated[str, Depends(require_admin)],
) -> PullResponse:
    """Apply only the files that changed since the last sync."""
    async with sync_lease(
        request.app.state.session_factory, ttl_seconds=settings.pump_lock_ttl_seconds
    ):
        logger.info("Pull requested by %s", admin)
        report = await sync_service.pull(
            session, source, cache, inline_asset_max_bytes=settings.inline_asset_max_bytes
        )
    return PullResponse(**report.to_dict())


@router.post("/clear", response_model=ClearResponse)
async def sync_clear(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
    settings: Annotated[Settings, Depends(get_settings)],
    admin: Annotated[str, Depends(require_admin)],
) -> ClearResponse:
    """Delete every content store row and flush the cache.  Cannot be undone."""
    async with sync_lease(
        request.app.state.session_factory, ttl_seconds=settings.pump_lock_ttl_seconds
    ):
        logger.warning("Clear requested by %s", admin)
        report = await sync_service.clear(session, cache)
    return ClearResponse(**report.to_dict())
