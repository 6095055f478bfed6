"""Flat-table file read schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class FlatFileResponse(BaseModel):
    """A config, data, static or javascript file and the tier that served it."""

    table: str
    filename: str
    file_type: str
    source_tier: str
    content: Any = None
    text_content: str | None = None
