"""Local note store.

``LocalStore`` is the contract the reconciliation engine depends on.
``JsonNoteStore`` implements it on top of a single JSON file so the
package is usable without a database:

* **Atomic writes** -- every mutation builds a new table, writes it
  through ``atomic_write_text()`` and only then swaps it in, so a failed
  write leaves memory and disk unchanged.
* **Copies out** -- ``find()`` and the listing queries return fresh
  ``Note`` objects, so callers may mutate them freely.
* **Thread safe** -- one lock guards the in-memory table and the file.

Records keep the sentinel ``system:*`` tags; they are folded into
``Note.lifecycle`` on the way out.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol
from uuid import UUID

from notesync.errors import IOFailure
from notesync.file_handler import atomic_write_text
from notesync.note import (
    Note,
    compare_dates,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_STORE_VERSION = 1


class LocalStore(Protocol):
    """Contract of the on-device note store."""

    def find(self, guid: UUID) -> Note | None:
        """Return the stored note with *guid*, or ``None``."""
        ...  # pragma: no cover

    def upsert(self, note: Note) -> str:
        """Insert or overwrite *note*; return its local handle."""
        ...  # pragma: no cover

    def delete(self, key: UUID | str) -> bool:
        """Physically remove a note by guid or handle."""
        ...  # pragma: no cover

    def list_by_guid_date(self) -> list[Note]:
        """Return every stored note, tombstones included."""
        ...  # pragma: no cover


class JsonNoteStore:
    """``LocalStore`` backed by one JSON file.

    Args:
        path: Location of the store file.  Created on first write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._records: dict[str, dict] = {}
        self._next_handle = 1
        self._load()

    # ------------------------------------------------------------------
    # LocalStore contract
    # ------------------------------------------------------------------

    def find(self, guid: UUID) -> Note | None:
        with self._lock:
            record = self._records.get(str(guid))
            return None if record is None else self._to_note(record)

    def upsert(self, note: Note) -> str:
        with self._lock:
            key = str(note.guid)
            existing = self._records.get(key)
            next_handle = self._next_handle
            if existing is None:
                handle = str(next_handle)
                next_handle += 1
                logger.debug("Inserting note %s as handle %s", key, handle)
            else:
                handle = existing["handle"]
                logger.debug("Updating note %s (handle %s)", key, handle)
            records = dict(self._records)
            records[key] = self._to_record(note, handle)
            self._commit(records, next_handle)
        note.local_handle = handle
        return handle

    def delete(self, key: UUID | str) -> bool:
        with self._lock:
            guid_key = self._resolve_key(key)
            if guid_key is None:
                return False
            records = dict(self._records)
            del records[guid_key]
            self._commit(records)
            logger.debug("Deleted note %s", guid_key)
            return True

    def list_by_guid_date(self) -> list[Note]:
        with self._lock:
            notes = [self._to_note(r) for r in self._records.values()]
        return sorted(notes, key=lambda n: str(n.guid))

    # ------------------------------------------------------------------
    # Listing queries
    # ------------------------------------------------------------------

    def list_notes(
        self, include_templates: bool = False, query: str | None = None
    ) -> list[Note]:
        """Return live notes, newest first.

        Tombstones are always excluded; templates unless
        *include_templates*.  Every whitespace-separated term of *query*
        must appear (case-insensitively) in the title or the content.
        """
        terms = query.lower().split() if query else []
        with self._lock:
            notes = [self._to_note(r) for r in self._records.values()]
        result = []
        for note in notes:
            if note.is_deleted:
                continue
            if note.is_template and not include_templates:
                continue
            haystack = (note.title + "\n" + note.xml_content).lower()
            if all(term in haystack for term in terms):
                result.append(note)
        result.sort(key=lambda n: n.last_change_date, reverse=True)
        return result

    def titles(self) -> list[str]:
        with self._lock:
            return [r["title"] for r in self._records.values()]

    def new_since(self, sync_date: datetime | None) -> list[Note]:
        """Return notes changed strictly after *sync_date*."""
        with self._lock:
            notes = [self._to_note(r) for r in self._records.values()]
        return [
            n
            for n in notes
            if compare_dates(n.last_change_date, sync_date) > 0
        ]

    def purge_deleted(self) -> int:
        """Remove every tombstone, synced or not.  Returns the count."""
        with self._lock:
            doomed = [
                key
                for key, record in self._records.items()
                if self._to_note(record).is_deleted
            ]
            if doomed:
                self._commit(
                    {
                        key: record
                        for key, record in self._records.items()
                        if key not in doomed
                    }
                )
        logger.info("Purged %d deleted notes", len(doomed))
        return len(doomed)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._records)
            self._commit({})
        logger.info("Deleted %d local notes", count)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_key(self, key: UUID | str) -> str | None:
        if isinstance(key, UUID):
            key = str(key)
        if key in self._records:
            return key
        for guid_key, record in self._records.items():
            if record["handle"] == key:
                return guid_key
        return None

    @staticmethod
    def _to_record(note: Note, handle: str) -> dict:
        return {
            "handle": handle,
            "guid": str(note.guid),
            "title": note.title,
            "content": note.xml_content,
            "modified_date": format_timestamp(note.last_change_date),
            "last_sync_revision": note.last_sync_revision,
            "tags": note.all_tags,
            "file": note.file_name,
        }

    @staticmethod
    def _to_note(record: dict) -> Note:
        note = Note.from_tags(
            record["guid"],
            record.get("tags", []),
            title=record.get("title", ""),
            last_change_date=parse_timestamp(record["modified_date"]),
            last_sync_revision=record.get("last_sync_revision"),
            local_handle=record["handle"],
            file_name=record.get("file"),
        )
        note.set_content_preserving_timestamp(record.get("content", ""))
        return note

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise IOFailure(f"Cannot load note store {self.path}: {exc}") from exc
        self._records = dict(data.get("notes", {}))
        self._next_handle = int(data.get("next_handle", 1))

    def _commit(
        self, records: dict[str, dict], next_handle: int | None = None
    ) -> None:
        """Write *records* to disk, then make them the in-memory table.

        If the write raises, the table and handle counter are unchanged.
        """
        if next_handle is None:
            next_handle = self._next_handle
        payload = {
            "version": _STORE_VERSION,
            "next_handle": next_handle,
            "notes": records,
        }
        atomic_write_text(self.path, json.dumps(payload, indent=2))
        self._records = records
        self._next_handle = next_handle
