"""Datetime helpers: everything stored and emitted is timezone-aware UTC."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    SQLite drops the offset on ``DateTime(timezone=True)`` columns, so values
    read back from it come out naive.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization."""
    return ensure_aware(dt).isoformat()


def expires_after(seconds: float, start: datetime | None = None) -> datetime:
    """Return the instant ``seconds`` after ``start`` (default: now)."""
    return (start or now_utc()) + timedelta(seconds=seconds)
