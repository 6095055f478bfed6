"""Public read endpoints for images, resumes and the other flat tables."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from langcms.api.deps import get_resolver, get_session
from langcms.schemas.assets import FlatFileResponse
from langcms.services.resolver_service import Resolver

router = APIRouter(prefix="/api", tags=["assets"])

ASSET_CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.get("/assets/{table}/{filename}")
async def get_asset(
    table: str,
    filename: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
) -> Response:
    """Serve the raw bytes of an image or resume with its stored MIME type."""
    asset = await resolver.resolve_asset(session, table, filename)
    return Response(
        content=asset.data,
        media_type=asset.mime_type,
        headers={
            "Cache-Control": ASSET_CACHE_CONTROL,
            "X-Source-Tier": str(asset.source_tier),
        },
    )


@router.get("/files/{table}/{filename}", response_model=FlatFileResponse)
async def get_flat_file(
    table: str,
    filename: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
) -> FlatFileResponse:
    resolved = await resolver.resolve_flat_file(session, table, filename)
    return FlatFileResponse(
        table=resolved.table,
        filename=resolved.filename,
        file_type=resolved.file_type,
        source_tier=str(resolved.source_tier),
        content=resolved.content,
        text_content=resolved.text_content,
    )
