"""Tests for sync state persistence layer.

Covers:
- Load returns empty state when file doesn't exist
- Save creates file and state dir
- Baseline round trip through mark_synced / last_sync_date
- Unknown keys survive a baseline update
- Corrupt files raise IOFailure / MalformedTimestamp
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import at
from notesync.errors import IOFailure, MalformedTimestamp
from notesync.sync.state import STATE_FILE, SyncState

# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------


class TestSyncStateLoad:
    """Tests for SyncState.load()."""

    def test_load_returns_empty_state_when_file_missing(self, tmp_path: Path):
        ss = SyncState(tmp_path / "nonexistent")
        assert ss.load() == {"version": 1, "last_sync": None}

    def test_corrupt_file_raises_io_failure(self, tmp_path: Path):
        (tmp_path / STATE_FILE).write_text("{not json", encoding="utf-8")
        with pytest.raises(IOFailure):
            SyncState(tmp_path).load()


class TestSyncStateSave:
    """Tests for SyncState.save()."""

    def test_save_creates_state_dir_if_needed(self, tmp_path: Path):
        state_dir = tmp_path / "nested" / "deep" / ".notesync"
        ss = SyncState(state_dir)
        ss.save(ss.load())
        assert (state_dir / STATE_FILE).is_file()

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.save({"version": 1, "last_sync": None})
        assert [p.name for p in tmp_path.iterdir()] == [STATE_FILE]


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------


class TestBaseline:
    def test_never_synced(self, tmp_path: Path):
        assert SyncState(tmp_path).last_sync_date() is None

    def test_mark_synced_round_trip(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.mark_synced(at(5))
        assert SyncState(tmp_path).last_sync_date() == at(5)

    def test_stored_as_utc_milliseconds(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.mark_synced(at(0))
        data = json.loads(ss.path.read_text(encoding="utf-8"))
        assert data["last_sync"] == "2024-03-01T12:00:00.000+00:00"

    def test_other_keys_preserved(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.save({"version": 1, "last_sync": None, "server_id": "abc"})
        ss.mark_synced(at(1))
        assert ss.load()["server_id"] == "abc"

    def test_corrupt_baseline(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.save({"version": 1, "last_sync": "last week"})
        with pytest.raises(MalformedTimestamp):
            ss.last_sync_date()
