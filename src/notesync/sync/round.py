"""Batch sequencing for one sync round.

A ``SyncRound`` is created per round and handed to every reconciliation
call of that round, so concurrent or repeated rounds never share state.
It answers one question: when may the remote service be told that the
round is over?

The round is over once the batch's final note has been reconciled *and*
every escalated conflict has been answered.  Conflicts are answered
asynchronously by the user, so the note reconciled last is not always
the note uploaded last; the round therefore remembers the latest upload
and hands it to the remote as the sentinel of the round.

Exactly one terminal call is made per round:

* ``remote.set_last_guid(last_upload_guid)`` when anything was pushed or
  deleted remotely;
* ``remote.finish_sync(True)`` otherwise.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Sequence
from uuid import UUID

from notesync.errors import RoundAlreadyFinished
from notesync.note import Note, now_utc
from notesync.remote import RemoteSyncService
from notesync.sync.models import ConflictHandle

logger = logging.getLogger(__name__)


class SyncRound:
    """Per-round sequencing context.

    Args:
        last_guid_in_batch: Guid of the final note of the incoming batch,
            or ``None`` for an empty batch.
        sync_date: Baseline of the last completed round, or ``None`` if
            the client never synced.
    """

    def __init__(
        self,
        last_guid_in_batch: UUID | None,
        sync_date: datetime | None,
    ) -> None:
        self.last_guid_in_batch = last_guid_in_batch
        self.sync_date = sync_date
        self.started_at = now_utc()
        self.last_conflict_guid: UUID | None = None
        self.last_upload_guid: UUID | None = None
        self.finished = False
        self._batch_seen = False
        self._pending: dict[UUID, ConflictHandle] = {}
        self._lock = threading.RLock()

    @classmethod
    def begin(
        cls, notes: Sequence[Note], sync_date: datetime | None
    ) -> SyncRound:
        """Start a round whose final note is the last of *notes*."""
        last = notes[-1].guid if notes else None
        logger.debug("Beginning sync round, last guid %s", last)
        return cls(last, sync_date)

    # ------------------------------------------------------------------
    # Bookkeeping called by the engine
    # ------------------------------------------------------------------

    def record_upload(self, guid: UUID) -> None:
        """Remember *guid* as the latest note sent to the remote."""
        with self._lock:
            self.last_upload_guid = guid

    def register_conflict(
        self, local: Note, remote: Note, diff_direction: int
    ) -> ConflictHandle:
        """Track a new conflict and return its handle.

        The first conflict of the round is flagged ``is_last_conflict``:
        presenters stack conflicts, so it is the one answered last.
        """
        with self._lock:
            is_last = self.last_conflict_guid is None
            if is_last:
                logger.debug("Conflict %s closes the batch", remote.guid)
                self.last_conflict_guid = remote.guid
            handle = ConflictHandle(
                local=local,
                remote=remote,
                diff_direction=diff_direction,
                is_last_conflict=is_last,
            )
            self._pending[remote.guid] = handle
            return handle

    def conflict_resolved(
        self, guid: UUID, remote: RemoteSyncService
    ) -> bool:
        """Drop *guid* from the pending set; finish the round if possible."""
        with self._lock:
            self._pending.pop(guid, None)
            return self._maybe_finish(remote)

    def note_reconciled(
        self, guid: UUID, remote: RemoteSyncService
    ) -> bool:
        """Note that *guid* was reconciled; finish the round if possible.

        Returns:
            True if this call made the terminal call.
        """
        with self._lock:
            if guid == self.last_guid_in_batch:
                self._batch_seen = True
            return self._maybe_finish(remote)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @property
    def pending_conflicts(self) -> list[ConflictHandle]:
        with self._lock:
            return list(self._pending.values())

    def finish(self, remote: RemoteSyncService) -> None:
        """Make the terminal call for this round.

        Raises:
            RoundAlreadyFinished: If the terminal call was already made.
        """
        with self._lock:
            if self.finished:
                raise RoundAlreadyFinished(
                    "Sync round already signalled completion"
                )
            self.finished = True
            sentinel = self.last_upload_guid
        if sentinel is None:
            logger.info("Sync round complete, nothing uploaded")
            remote.finish_sync(True)
        else:
            logger.info("Sync round complete, last upload is %s", sentinel)
            remote.set_last_guid(sentinel)

    def acknowledge(self, guid: UUID) -> None:
        """Called when the remote confirms the upload of *guid*.

        Clears local tracking once the sentinel upload is confirmed.
        """
        with self._lock:
            if guid != self.last_upload_guid:
                return
            logger.debug("Sentinel %s acknowledged", guid)
            self.last_upload_guid = None
            self.last_conflict_guid = None

    def _maybe_finish(self, remote: RemoteSyncService) -> bool:
        if self.finished or not self._batch_seen or self._pending:
            return False
        self.finish(remote)
        return True
