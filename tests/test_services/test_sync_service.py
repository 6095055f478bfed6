"""Tests for the sync service's pure parts: diffing and row building."""

from __future__ import annotations

from pathlib import Path

from langcms.filesystem.scanner import ScannedFile, hash_content
from langcms.services.datetime_service import now_utc
from langcms.services.sync_service import (
    ChangeStatus,
    ErrorKind,
    FileEntry,
    build_row,
    compute_diff,
)


def _entry(path: str, hash_: str = "abc", table: str = "collections") -> FileEntry:
    return FileEntry(file_path=path, content_hash=hash_, table_name=table)


def _scanned(rel: str, content: str | bytes, table: str, file_type: str) -> ScannedFile:
    return ScannedFile(
        absolute_path=Path("/src") / rel,
        relative_path=rel,
        content=content,
        hash=hash_content(content),
        table=table,
        file_type=file_type,
    )


class TestComputeDiff:
    def test_new_file(self) -> None:
        result = compute_diff({"a.json": _entry("a.json", "h1")}, {
            "a.json": _entry("a.json", "h1"),
            "b.json": _entry("b.json", "h2"),
        })
        assert [c.file_path for c in result.new] == ["b.json"]
        assert result.new[0].status == ChangeStatus.NEW
        assert result.modified == []
        assert result.deleted == []
        assert result.unchanged == ["a.json"]

    def test_modified_file(self) -> None:
        result = compute_diff({"a.json": _entry("a.json", "h1")}, {"a.json": _entry("a.json", "h2")})
        assert [c.file_path for c in result.modified] == ["a.json"]
        assert result.modified[0].content_hash == "h2"

    def test_deleted_file_keeps_manifest_table(self) -> None:
        result = compute_diff({"x.png": _entry("x.png", "h", "images")}, {})
        assert [c.file_path for c in result.deleted] == ["x.png"]
        assert result.deleted[0].table_name == "images"

    def test_empty(self) -> None:
        result = compute_diff({}, {})
        assert result.files_scanned == 0
        assert result.to_dict()["new"] == []

    def test_files_scanned_excludes_deleted(self) -> None:
        result = compute_diff(
            {"gone.json": _entry("gone.json"), "same.json": _entry("same.json")},
            {"same.json": _entry("same.json"), "fresh.json": _entry("fresh.json")},
        )
        assert result.files_scanned == 2
        assert result.to_dict() == {
            "files_scanned": 2,
            "new": ["fresh.json"],
            "modified": [],
            "deleted": ["gone.json"],
            "unchanged_count": 1,
        }


class TestBuildRow:
    def test_collection_row(self) -> None:
        f = _scanned("collections/en/data/skills.json", '{"a": 1}', "collections", "json")
        row, error = build_row(f, now_utc(), 1024)
        assert error is None
        assert row is not None
        assert row["language"] == "en"
        assert row["type"] == "data"
        assert row["filename"] == "skills"
        assert row["content"] == {"a": 1}
        assert row["content_hash"] == f.hash
        assert row["file_path"] == "collections/en/data/skills.json"

    def test_collection_parse_error(self) -> None:
        f = _scanned("collections/en/data/bad.json", "{oops", "collections", "json")
        row, error = build_row(f, now_utc(), 1024)
        assert row is None
        assert error is not None
        assert error.kind == ErrorKind.PARSE
        assert error.path == "collections/en/data/bad.json"

    def test_collection_bad_layout(self) -> None:
        f = _scanned("collections/en/skills.json", "{}", "collections", "json")
        row, error = build_row(f, now_utc(), 1024)
        assert row is None
        assert error is not None
        assert error.kind == ErrorKind.LAYOUT

    def test_collection_unsupported_type(self) -> None:
        f = _scanned("collections/en/misc/skills.json", "{}", "collections", "json")
        _, error = build_row(f, now_utc(), 1024)
        assert error is not None
        assert "unsupported collection type" in error.message

    def test_collection_name_with_key_separator(self) -> None:
        f = _scanned("collections/en/data/skills:meta.json", "{}", "collections", "json")
        row, error = build_row(f, now_utc(), 1024)
        assert row is None
        assert error is not None
        assert error.kind == ErrorKind.LAYOUT
        assert "Invalid filename" in error.message

    def test_flat_json_goes_to_content(self) -> None:
        f = _scanned("config/app.json", '{"theme": "dark"}', "config_files", "json")
        row, _ = build_row(f, now_utc(), 1024)
        assert row is not None
        assert row["content"] == {"theme": "dark"}
        assert row["text_content"] is None
        assert row["filename"] == "app.json"

    def test_flat_text_goes_to_text_content(self) -> None:
        f = _scanned("js/app.js", "let x = 1;", "javascript_files", "js")
        row, _ = build_row(f, now_utc(), 1024)
        assert row is not None
        assert row["content"] is None
        assert row["text_content"] == "let x = 1;"

    def test_binary_inline_under_limit(self) -> None:
        f = _scanned("image/logo.png", b"12345", "images", "png")
        row, _ = build_row(f, now_utc(), 10)
        assert row is not None
        assert row["data"] == b"12345"
        assert row["mime_type"] == "image/png"
        assert row["size_bytes"] == 5

    def test_binary_by_reference_over_limit(self) -> None:
        f = _scanned("resume/cv.pdf", b"x" * 20, "resumes", "pdf")
        row, _ = build_row(f, now_utc(), 10)
        assert row is not None
        assert row["data"] is None
        assert row["size_bytes"] == 20
        assert row["file_path"] == "resume/cv.pdf"
