"""Cache key scheme shared by the pump, admin writes and the resolver.

Keys are relative to the configured namespace prefix, which ``ContentCache``
adds on every call.
"""

from __future__ import annotations

from langcms.filesystem.scanner import strip_json_suffix

LAST_SYNC_KEY = "sync:last-result"

# Segments are joined with ":" and invalidation matches glob patterns.
_RESERVED_CHARS = frozenset(":*?[]\\")


def validate_segment(value: str, what: str) -> str:
    """Reject names that could escape a path segment or alias another key."""
    if not value or "/" in value or value == ".." or _RESERVED_CHARS.intersection(value):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


def collection_key(language: str, folder: str, filename: str) -> str:
    """Key holding a collection file's content."""
    return f"collections:{language}:{folder}:{strip_json_suffix(filename)}"


def collection_meta_key(language: str, folder: str, filename: str) -> str:
    """Key holding a collection row without its content."""
    return f"{collection_key(language, folder, filename)}:meta"


def collection_keys(language: str, folder: str, filename: str) -> list[str]:
    """Every per-file key that must go when the file's row changes."""
    return [
        collection_key(language, folder, filename),
        collection_meta_key(language, folder, filename),
    ]


def list_key(table: str, qualifier: str) -> str:
    """Key for a cached listing of ``table``."""
    return f"api:{table}:list:{qualifier}"


def list_pattern(table: str) -> str:
    """Glob matching every cached listing of ``table``."""
    return f"api:{table}:list:*"


def flat_file_key(table: str, filename: str) -> str:
    """Key holding a resolved flat-table file."""
    return f"files:{table}:{filename}"


def flat_file_pattern(table: str) -> str:
    return f"files:{table}:*"
