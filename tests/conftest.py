"""Shared pytest fixtures for notesync tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

import pytest

from notesync.note import Note
from notesync.store import JsonNoteStore

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Return BASE_TIME shifted by *minutes*."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_note(
    guid: UUID | None = None,
    title: str = "Shopping",
    content: str = "<note-content>milk</note-content>",
    minutes: int = 0,
    **fields,
) -> Note:
    """Build a note whose change date is BASE_TIME + *minutes*."""
    note = Note(
        guid=guid or uuid.uuid4(),
        title=title,
        last_change_date=at(minutes),
        **fields,
    )
    note.set_content_preserving_timestamp(content)
    return note


class FakeRemote:
    """In-memory RemoteSyncService recording every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def push_note(self, note: Note) -> None:
        self.calls.append(("push_note", note.guid))

    def delete_note(self, guid: UUID) -> None:
        self.calls.append(("delete_note", guid))

    def finish_sync(self, success: bool) -> None:
        self.calls.append(("finish_sync", success))

    def set_last_guid(self, guid: UUID) -> None:
        self.calls.append(("set_last_guid", guid))

    @property
    def terminal_calls(self) -> list[tuple]:
        return [
            c for c in self.calls if c[0] in ("finish_sync", "set_last_guid")
        ]


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def store(tmp_path: Path) -> JsonNoteStore:
    return JsonNoteStore(tmp_path / "notes.json")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep NOTESYNC_* and LOG_* variables of the host out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("NOTESYNC_") or key in ("LOG_LEVEL", "LOG_FILE"):
            monkeypatch.delenv(key, raising=False)
