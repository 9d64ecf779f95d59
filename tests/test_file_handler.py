"""Tests for file_handler module: discovery, encoding-aware reads, atomic writes."""

from unittest.mock import patch

import pytest

from notesync.errors import IOFailure
from notesync.file_handler import (
    atomic_write_text,
    list_documents,
    read_file_with_encoding,
)

# =============================================================================
# list_documents
# =============================================================================


class TestListDocuments:
    """Tests for list_documents(directory, suffix)."""

    def test_filters_by_suffix_and_sorts(self, tmp_path):
        for name in ("b.note", "a.note", "c.txt"):
            (tmp_path / name).write_text("x")
        (tmp_path / "sub.note").mkdir()
        assert [p.name for p in list_documents(tmp_path)] == ["a.note", "b.note"]

    def test_custom_suffix(self, tmp_path):
        (tmp_path / "a.xml").write_text("x")
        assert [p.name for p in list_documents(tmp_path, ".xml")] == ["a.xml"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(IOFailure, match="Cannot list"):
            list_documents(tmp_path / "missing")


# =============================================================================
# read_file_with_encoding
# =============================================================================


class TestReadFileWithEncoding:
    """Tests for read_file_with_encoding(path)."""

    def test_utf8(self, tmp_path):
        f = tmp_path / "u.note"
        f.write_text("café", encoding="utf-8")
        assert read_file_with_encoding(f) == ("café", "utf-8")

    def test_bom_stripped(self, tmp_path):
        f = tmp_path / "bom.note"
        f.write_bytes(b"\xef\xbb\xbfhello")
        content, encoding = read_file_with_encoding(f)
        assert content == "hello"
        assert encoding == "utf-8"

    def test_empty_file(self, tmp_path):
        f = tmp_path / "empty.note"
        f.write_bytes(b"")
        assert read_file_with_encoding(f) == ("", "utf-8")

    def test_legacy_encoding_detected(self, tmp_path):
        """Non-UTF-8 bytes are decoded through charset detection."""
        f = tmp_path / "latin.note"
        text = "Les élèves ont révisé la leçon de français."
        f.write_bytes(text.encode("cp1252"))
        content, encoding = read_file_with_encoding(f)
        assert encoding != "utf-8"
        assert "français" in content

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(IOFailure):
            read_file_with_encoding(tmp_path / "nope.note")


# =============================================================================
# atomic_write_text
# =============================================================================


class TestAtomicWriteText:
    """Tests for atomic_write_text(path, content)."""

    def test_creates_parents(self, tmp_path):
        target = tmp_path / "a" / "b" / "out.json"
        atomic_write_text(target, "{}")
        assert target.read_text(encoding="utf-8") == "{}"

    def test_overwrites(self, tmp_path):
        target = tmp_path / "out.json"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")
        assert target.read_text(encoding="utf-8") == "two"

    def test_failure_keeps_old_content_and_cleans_up(self, tmp_path):
        target = tmp_path / "out.json"
        atomic_write_text(target, "old")
        with patch(
            "notesync.file_handler.os.replace", side_effect=OSError("boom")
        ):
            with pytest.raises(IOFailure, match="boom"):
                atomic_write_text(target, "new")
        assert target.read_text(encoding="utf-8") == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]
