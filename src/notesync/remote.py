"""Contract of the remote note service as seen by the reconciliation engine.

The wire transport is not part of this package; anything that satisfies
``RemoteSyncService`` can be handed to ``NoteReconciler``.  ``OutboxRemote``
stands in when no transport is attached.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from notesync.note import Note

logger = logging.getLogger(__name__)


class RemoteSyncService(Protocol):
    """Client-side view of the remote note service."""

    def push_note(self, note: Note) -> None:
        """Queue *note* for upload in the current round."""
        ...  # pragma: no cover

    def delete_note(self, guid: UUID) -> None:
        """Queue deletion of *guid* on the server."""
        ...  # pragma: no cover

    def finish_sync(self, success: bool) -> None:
        """Terminal call: the round ended without pending uploads."""
        ...  # pragma: no cover

    def set_last_guid(self, guid: UUID) -> None:
        """Terminal call: the round ends once *guid* is acknowledged."""
        ...  # pragma: no cover


class OutboxRemote:
    """``RemoteSyncService`` that only queues operations.

    Used when no transport is attached (command line imports): pushes and
    deletions are collected in order so the caller can report or replay
    them later.
    """

    def __init__(self) -> None:
        self.pushed: list[Note] = []
        self.deleted: list[UUID] = []
        self.last_guid: UUID | None = None
        self.finished: bool | None = None

    def push_note(self, note: Note) -> None:
        logger.debug("Queued push of %s", note.guid)
        self.pushed.append(note)

    def delete_note(self, guid: UUID) -> None:
        logger.debug("Queued deletion of %s", guid)
        self.deleted.append(guid)

    def finish_sync(self, success: bool) -> None:
        self.finished = success

    def set_last_guid(self, guid: UUID) -> None:
        self.last_guid = guid

    @property
    def queued(self) -> int:
        return len(self.pushed) + len(self.deleted)
