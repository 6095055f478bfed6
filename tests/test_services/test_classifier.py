"""Tests for the file classifier."""

from __future__ import annotations

import pytest

from langcms.filesystem.classifier import (
    UNKNOWN_TABLE,
    Classification,
    classify,
    file_extension,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("path", "table", "file_type"),
        [
            ("collections/en/data/skills.json", "collections", "json"),
            ("files/readme.txt", "static_files", "txt"),
            ("config/app.json", "config_files", "json"),
            ("data/items.json", "data_files", "json"),
            ("image/logo.PNG", "images", "png"),
            ("js/app.js", "javascript_files", "js"),
            ("resume/cv.pdf", "resumes", "pdf"),
        ],
    )
    def test_each_rule(self, path: str, table: str, file_type: str) -> None:
        assert classify(path) == Classification(table=table, file_type=file_type)

    def test_collections_wins_over_config(self) -> None:
        result = classify("/collections/en/config/x.json")
        assert result.table == "collections"
        assert result.file_type == "json"

    def test_files_wins_over_data(self) -> None:
        assert classify("files/data/report.xml").table == "static_files"

    def test_absolute_and_relative_agree(self) -> None:
        assert classify("/srv/public/js/app.js") == classify("js/app.js")

    def test_windows_separators(self) -> None:
        assert classify("collections\\en\\data\\a.json").table == "collections"

    def test_js_rule_fixes_type(self) -> None:
        assert classify("js/vendor/lib.min.mjs").file_type == "js"

    def test_unknown(self) -> None:
        result = classify("other/thing.json")
        assert result.table == UNKNOWN_TABLE
        assert not result.is_known

    def test_partial_segment_does_not_match(self) -> None:
        assert classify("myfiles/readme.txt").table == UNKNOWN_TABLE

    def test_deterministic(self) -> None:
        assert classify("data/items.json") == classify("data/items.json")


class TestFileExtension:
    def test_lowercases(self) -> None:
        assert file_extension("a/B.JSON") == "json"

    def test_no_extension(self) -> None:
        assert file_extension("files/LICENSE") == "unknown"

    def test_dot_in_directory_only(self) -> None:
        assert file_extension("v1.2/README") == "unknown"
