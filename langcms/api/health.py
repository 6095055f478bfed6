"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from langcms.api.deps import get_cache, get_session
from langcms.cache.service import ContentCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    cache: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[ContentCache, Depends(get_cache)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers.

    The cache is never authoritative, so an unreachable cache only degrades
    the status; the filesystem and database still serve reads.
    """
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    cache_status = "ok" if await cache.ping() else "error"

    return HealthResponse(
        status="ok" if db_status == cache_status == "ok" else "degraded",
        version="0.1.0",
        database=db_status,
        cache=cache_status,
    )
