"""Source tree scanner: walk, hash and classify eligible files."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from langcms.filesystem.classifier import COLLECTIONS_TABLE, classify, file_extension

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset(
    {"json", "js", "xml", "html", "txt", "pdf", "png", "jpg", "jpeg", "gif", "svg", "webp", "docx"}
)
TEXT_EXTENSIONS = frozenset({"json", "js", "xml", "html", "txt", "svg"})
IGNORED_DIRS = frozenset({".next", "node_modules", ".git"})
COLLECTION_FOLDERS = ("config", "data")


@dataclass
class ScannedFile:
    """One eligible file found under the source root."""

    absolute_path: Path
    relative_path: str
    content: str | bytes
    hash: str
    table: str
    file_type: str

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)

    @property
    def size_bytes(self) -> int:
        if isinstance(self.content, str):
            return len(self.content.encode("utf-8"))
        return len(self.content)


@dataclass(frozen=True)
class CollectionKey:
    """Identity of a collection file derived from its path."""

    language: str
    type: str
    filename: str


def hash_content(content: str | bytes) -> str:
    """Compute SHA-256 hash of content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def strip_json_suffix(filename: str) -> str:
    """Return the canonical, suffix-less form of a collection filename."""
    return filename[:-5] if filename.lower().endswith(".json") else filename


def collection_key_from_path(relative_path: str) -> CollectionKey | None:
    """Derive (language, type, filename) from a collection file path.

    ``language`` is the segment right after ``collections``, ``type`` the next
    one and ``filename`` the last segment without ``.json``.  Returns None when
    the path is too short to carry all three.
    """
    parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
    try:
        idx = parts.index(COLLECTIONS_TABLE)
    except ValueError:
        return None
    tail = parts[idx + 1 :]
    if len(tail) < 3:
        return None
    return CollectionKey(language=tail[0], type=tail[1], filename=strip_json_suffix(tail[-1]))


def read_source_file(path: Path) -> tuple[bytes, str | bytes]:
    """Return the raw bytes and the decoded content of a source file.

    Text formats are decoded as UTF-8 without newline translation, so CRLF
    line endings are kept; everything else stays bytes.
    """
    raw = path.read_bytes()
    if file_extension(path.name) in TEXT_EXTENSIONS:
        return raw, raw.decode("utf-8")
    return raw, raw


def scan_source_tree(source_dir: Path) -> dict[str, ScannedFile]:
    """Scan the source tree and build a map of relative path to descriptor.

    Unreadable files are logged and skipped; files that match no table are
    left out of the result.
    """
    entries: dict[str, ScannedFile] = {}
    if not source_dir.is_dir():
        logger.warning("Source directory %s does not exist", source_dir)
        return entries

    for root, dirs, files in os.walk(source_dir):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
        for filename in sorted(files):
            if file_extension(filename) not in ALLOWED_EXTENSIONS:
                continue
            full = Path(root) / filename
            rel = full.relative_to(source_dir).as_posix()
            classification = classify(rel)
            if not classification.is_known:
                logger.debug("Skipping unclassified file %s", rel)
                continue
            try:
                raw, content = read_source_file(full)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Failed to read %s: %s", rel, exc)
                continue
            entries[rel] = ScannedFile(
                absolute_path=full,
                relative_path=rel,
                content=content,
                hash=hash_content(raw),
                table=classification.table,
                file_type=classification.file_type,
            )

    logger.info("Scanned %s: %d eligible files", source_dir, len(entries))
    return dict(sorted(entries.items()))
