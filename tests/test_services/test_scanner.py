"""Tests for the source tree scanner and content hashing."""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from langcms.filesystem.scanner import (
    CollectionKey,
    collection_key_from_path,
    hash_content,
    scan_source_tree,
    strip_json_suffix,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestHashContent:
    def test_matches_sha256_of_utf8(self) -> None:
        text = "héllo"
        assert hash_content(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()

    def test_str_and_bytes_agree(self) -> None:
        assert hash_content("abc") == hash_content(b"abc")

    def test_whitespace_changes_hash(self) -> None:
        assert hash_content('{"a": 1}') != hash_content('{"a":1}')

    def test_is_64_hex_chars(self) -> None:
        digest = hash_content(b"")
        assert len(digest) == 64
        int(digest, 16)


class TestCollectionKey:
    def test_language_type_filename(self) -> None:
        assert collection_key_from_path("collections/en/data/skills.json") == CollectionKey(
            "en", "data", "skills"
        )

    def test_nested_prefix(self) -> None:
        key = collection_key_from_path("site/collections/fr/config/site.json")
        assert key == CollectionKey("fr", "config", "site")

    def test_too_short(self) -> None:
        assert collection_key_from_path("collections/en/skills.json") is None

    def test_no_collections_segment(self) -> None:
        assert collection_key_from_path("data/items.json") is None

    def test_strip_json_suffix(self) -> None:
        assert strip_json_suffix("skills.json") == "skills"
        assert strip_json_suffix("skills.JSON") == "skills"
        assert strip_json_suffix("skills") == "skills"


class TestScanSourceTree:
    def test_finds_every_eligible_file(self, source_dir: Path) -> None:
        scanned = scan_source_tree(source_dir)
        assert set(scanned) == {
            "collections/en/config/site.json",
            "collections/en/data/skills.json",
            "collections/fr/data/skills.json",
            "config/app.json",
            "data/items.json",
            "files/readme.txt",
            "image/logo.png",
            "js/app.js",
            "resume/cv.pdf",
        }

    def test_sorted_by_path(self, source_dir: Path) -> None:
        paths = list(scan_source_tree(source_dir))
        assert paths == sorted(paths)

    def test_ignored_dirs_and_extensions(self, source_dir: Path) -> None:
        scanned = scan_source_tree(source_dir)
        assert not any(p.startswith("node_modules/") for p in scanned)
        assert "notes.md" not in scanned
        assert "other/thing.json" not in scanned

    def test_text_and_binary_reads(self, source_dir: Path) -> None:
        scanned = scan_source_tree(source_dir)
        assert scanned["js/app.js"].is_text
        assert not scanned["image/logo.png"].is_text
        assert scanned["image/logo.png"].size_bytes == len(b"\x89PNG\r\n\x1a\nfake")

    def test_descriptor_fields(self, source_dir: Path) -> None:
        f = scan_source_tree(source_dir)["collections/en/data/skills.json"]
        assert f.table == "collections"
        assert f.file_type == "json"
        assert f.absolute_path == source_dir / "collections" / "en" / "data" / "skills.json"
        assert f.hash == hash_content(f.absolute_path.read_bytes())

    def test_crlf_is_hashed_and_kept_verbatim(self, source_dir: Path) -> None:
        raw = b'{"a": 1}\r\n'
        (source_dir / "config" / "crlf.json").write_bytes(raw)
        f = scan_source_tree(source_dir)["config/crlf.json"]
        assert f.hash == hashlib.sha256(raw).hexdigest()
        assert f.content == '{"a": 1}\r\n'

    def test_missing_root(self, tmp_path: Path) -> None:
        assert scan_source_tree(tmp_path / "nope") == {}

    def test_unreadable_file_is_skipped(
        self, source_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        from langcms.filesystem import scanner

        real_read = scanner.read_source_file

        def flaky_read(path: Path) -> tuple[bytes, str | bytes]:
            if path.name == "app.js":
                raise PermissionError("denied")
            return real_read(path)

        with (
            patch.object(scanner, "read_source_file", side_effect=flaky_read),
            caplog.at_level(logging.WARNING, logger="langcms.filesystem.scanner"),
        ):
            scanned = scan_source_tree(source_dir)

        assert "js/app.js" not in scanned
        assert "files/readme.txt" in scanned
        assert "Failed to read js/app.js" in caplog.text

    def test_invalid_utf8_text_is_skipped(self, source_dir: Path) -> None:
        (source_dir / "files" / "bad.txt").write_bytes(b"\xff\xfe\xfa")
        scanned = scan_source_tree(source_dir)
        assert "files/bad.txt" not in scanned
        assert "files/readme.txt" in scanned
