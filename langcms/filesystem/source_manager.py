"""Filesystem source: the on-disk tree the content store is seeded from."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from langcms.exceptions import ContentParseError
from langcms.filesystem.scanner import (
    COLLECTION_FOLDERS,
    ScannedFile,
    scan_source_tree,
    strip_json_suffix,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class SourceManager:
    """Reads files from the source root.

    Layout: ``collections/{language}/{config|data}/{filename}.json`` plus the
    flat top-level folders ``config/``, ``data/``, ``files/``, ``image/``,
    ``js/`` and ``resume/``.
    """

    source_dir: Path

    @property
    def collections_dir(self) -> Path:
        return self.source_dir / "collections"

    def scan(self) -> dict[str, ScannedFile]:
        """Scan the whole source tree."""
        return scan_source_tree(self.source_dir)

    def _validate_path(self, rel_path: str) -> Path:
        """Validate that a relative path stays within the source directory.

        Raises ValueError if the resolved path escapes source_dir.
        """
        full_path = (self.source_dir / rel_path).resolve()
        if not full_path.is_relative_to(self.source_dir.resolve()):
            raise ValueError(f"Path traversal detected: {rel_path}")
        return full_path

    def collection_path(self, language: str, folder: str, filename: str) -> str:
        """Relative path of a collection file, suffix normalized."""
        return f"collections/{language}/{folder}/{strip_json_suffix(filename)}.json"

    def read_collection(self, language: str, folder: str, filename: str) -> Any | None:
        """Read and parse one collection file.

        Returns None if the file does not exist.  Raises ContentParseError if
        it exists but is not valid JSON.
        """
        rel_path = self.collection_path(language, folder, filename)
        full_path = self._validate_path(rel_path)
        if not full_path.is_file():
            return None
        raw = full_path.read_text(encoding="utf-8")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ContentParseError(rel_path, str(exc)) from exc

    def flat_path(self, folder: str, filename: str) -> str:
        return f"{folder}/{filename}"

    def read_bytes(self, rel_path: str) -> bytes | None:
        """Read an asset stored by reference."""
        full_path = self._validate_path(rel_path)
        if not full_path.is_file():
            return None
        return full_path.read_bytes()

    def list_languages(self) -> list[str]:
        """Languages that have a directory under ``collections/``."""
        if not self.collections_dir.is_dir():
            return []
        return sorted(
            p.name
            for p in self.collections_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def list_collection_files(self, language: str, folder: str | None = None) -> list[dict[str, str]]:
        """List collection files for a language as ``{type, filename}`` dicts."""
        lang_dir = self._validate_path(f"collections/{language}")
        if not lang_dir.is_dir():
            return []
        folders = (folder,) if folder else COLLECTION_FOLDERS
        files: list[dict[str, str]] = []
        for name in folders:
            folder_dir = lang_dir / name
            if not folder_dir.is_dir():
                continue
            for path in sorted(folder_dir.glob("*.json")):
                files.append({"type": name, "filename": path.stem})
        return files
