"""Application-level exception types.

Convention:
- ``ValueError``: for validation errors that are safe to forward to clients
  (unknown folder, bad table name, etc.).  The global ``ValueError`` handler
  returns ``str(exc)`` as the 422 detail.
- ``NotFoundError``: every resolution tier missed.  Carries the tiers that were
  tried plus the cache key and filesystem path, returned as 404 diagnostics.
- ``StorageError``: a database or cache operation failed.  Read paths treat it
  as a miss and fall through; write paths record it in their report.  If one
  escapes to the HTTP layer it becomes a 503.
- ``SyncInProgressError``: another pump/pull/clear holds the sync lease (409).
"""

from __future__ import annotations


class NotFoundError(Exception):
    """No tier could supply the requested file."""

    def __init__(
        self,
        message: str,
        *,
        tiers_tried: list[str] | None = None,
        cache_key: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.tiers_tried = tiers_tried or []
        self.cache_key = cache_key
        self.path = path


class StorageError(Exception):
    """A database or cache operation failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class ContentParseError(ValueError):
    """A JSON-bearing source file could not be parsed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Failed to parse {path}: {message}")
        self.path = path


class SyncInProgressError(Exception):
    """Another sync run holds the sync lease."""
