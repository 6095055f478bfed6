"""Map source file paths to their content store table."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

UNKNOWN_TABLE = "unknown"

COLLECTIONS_TABLE = "collections"
FLAT_TEXT_TABLES = ("config_files", "data_files", "static_files", "javascript_files")
BINARY_TABLES = ("images", "resumes")
CONTENT_TABLES = (COLLECTIONS_TABLE, *FLAT_TEXT_TABLES, *BINARY_TABLES)

# Top-level source folder of each flat table.
TABLE_FOLDERS = {
    "config_files": "config",
    "data_files": "data",
    "static_files": "files",
    "javascript_files": "js",
    "images": "image",
    "resumes": "resume",
}

# Evaluated in order; the first matching directory segment wins, so
# "collections/en/config/x.json" belongs to collections, not config_files.
_RULES: tuple[tuple[str, str, str | None], ...] = (
    ("/collections/", COLLECTIONS_TABLE, "json"),
    ("/files/", "static_files", None),
    ("/config/", "config_files", None),
    ("/data/", "data_files", None),
    ("/image/", "images", None),
    ("/js/", "javascript_files", "js"),
    ("/resume/", "resumes", None),
)


@dataclass(frozen=True)
class Classification:
    """Target table and file type for a source file."""

    table: str
    file_type: str

    @property
    def is_known(self) -> bool:
        return self.table != UNKNOWN_TABLE


def file_extension(path: str) -> str:
    """Return the lower-cased extension without the dot, or ``"unknown"``."""
    ext = posixpath.splitext(path.replace("\\", "/"))[1].lower()
    return ext[1:] if ext else "unknown"


def classify(path: str) -> Classification:
    """Classify a file path by directory substring rules.

    Relative paths are matched as if rooted, so ``collections/en/data/a.json``
    and ``/srv/public/collections/en/data/a.json`` classify the same way.
    """
    normalized = "/" + path.replace("\\", "/").lstrip("/")
    ext = file_extension(normalized)
    for marker, table, fixed_type in _RULES:
        if marker in normalized:
            return Classification(table=table, file_type=fixed_type or ext)
    return Classification(table=UNKNOWN_TABLE, file_type=ext)
