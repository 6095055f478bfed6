"""Public read endpoints for language-scoped collection files."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from langcms.api.deps import get_resolver, get_session
from langcms.schemas.collections import (
    CollectionFileItem,
    CollectionFilesResponse,
    CollectionMetadataResponse,
    CollectionResponse,
    LanguagesResponse,
)
from langcms.services.resolver_service import Resolver

router = APIRouter(prefix="/api/collections", tags=["collections"])


@router.get("", response_model=LanguagesResponse)
async def list_languages(
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
) -> LanguagesResponse:
    """List languages that have collection files."""
    return LanguagesResponse(languages=await resolver.languages(session))


@router.get("/{language}", response_model=CollectionFilesResponse)
async def list_files(
    language: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
    folder: str | None = None,
) -> CollectionFilesResponse:
    """List collection files for a language, optionally for one folder."""
    files = await resolver.collection_files(session, language, folder)
    return CollectionFilesResponse(
        language=language, files=[CollectionFileItem(**f) for f in files]
    )


@router.get("/{language}/{folder}/{filename}", response_model=CollectionResponse)
async def get_collection_file(
    language: str,
    folder: str,
    filename: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
) -> CollectionResponse:
    """Resolve a collection file through cache, database and filesystem."""
    resolved = await resolver.resolve_file(session, language, folder, filename)
    return CollectionResponse(
        language=resolved.language,
        folder=resolved.folder,
        filename=resolved.filename,
        source_tier=str(resolved.source_tier),
        content=resolved.content,
    )


@router.get(
    "/{language}/{folder}/{filename}/metadata", response_model=CollectionMetadataResponse
)
async def get_collection_metadata(
    language: str,
    folder: str,
    filename: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    resolver: Annotated[Resolver, Depends(get_resolver)],
) -> CollectionMetadataResponse:
    """Resolve only the row metadata of a collection file."""
    resolved = await resolver.resolve_file(
        session, language, folder, filename, metadata_only=True
    )
    return CollectionMetadataResponse(
        language=resolved.language,
        folder=resolved.folder,
        filename=resolved.filename,
        source_tier=str(resolved.source_tier),
        metadata=resolved.metadata,
    )
