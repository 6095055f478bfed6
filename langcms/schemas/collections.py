"""Collection read and write schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class LanguagesResponse(BaseModel):
    """Languages with at least one collection file."""

    languages: list[str]


class CollectionFileItem(BaseModel):
    type: str
    filename: str


class CollectionFilesResponse(BaseModel):
    """Files available for one language."""

    language: str
    files: list[CollectionFileItem]


class CollectionResponse(BaseModel):
    """A resolved collection file and the tier that served it."""

    language: str
    folder: str
    filename: str
    source_tier: str
    content: Any = None


class CollectionMetadataResponse(BaseModel):
    """Row fields of a collection file, without its content."""

    language: str
    folder: str
    filename: str
    source_tier: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class CollectionWrite(BaseModel):
    """Admin request to replace a collection file's content."""

    content: Any
