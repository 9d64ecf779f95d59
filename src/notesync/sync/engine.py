"""Reconciliation engine: decides which copy of a note wins.

``NoteReconciler.reconcile()`` is invoked once per incoming note, either
from the ingestion pipeline (first-time import, no round) or from a sync
round (push round).  Given the incoming note and the stored note with the
same guid it:

1. Inserts the incoming note when nothing is stored yet.
2. Otherwise compares three UTC timestamps -- stored vs incoming, and the
   round's sync baseline against each of them.
3. Applies the first matching rule:

   * same change date -- overwrite the stored fields anyway (idempotent);
   * push round and the baseline lies on the same side of both dates --
     true conflict, escalate without touching either store;
   * stored copy newer -- push it, or propagate its deletion;
   * incoming copy newer -- overwrite the stored copy.

Each decision mutates at most one store.  The read-decide-write sequence
holds a per-guid lock so concurrent workers cannot interleave on the same
note.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from notesync.errors import IOFailure
from notesync.note import Note, compare_dates
from notesync.remote import RemoteSyncService
from notesync.store import LocalStore
from notesync.sync.models import (
    AwaitingUser,
    ConflictDecision,
    ConflictHandle,
    ReconcileResult,
    Resolved,
    SyncAction,
)
from notesync.sync.round import SyncRound

logger = logging.getLogger(__name__)


class _GuidLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class NoteReconciler:
    """Reconcile incoming notes against the local store.

    Args:
        store: The local note store.
        remote: The remote sync service.
    """

    def __init__(self, store: LocalStore, remote: RemoteSyncService) -> None:
        self.store = store
        self.remote = remote
        self._locks: dict[UUID, _GuidLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def reconcile(
        self, note: Note, sync_round: SyncRound | None = None
    ) -> ReconcileResult:
        """Reconcile one incoming note.

        Args:
            note: The incoming note (from a document or the remote).
            sync_round: The current push round, or ``None`` for an import.

        Returns:
            ``Resolved`` when the decision is final, ``AwaitingUser`` when
            a conflict needs the user.

        Raises:
            IOFailure: If the local store cannot be written.
        """
        with self._guid_lock(note.guid):
            result = self._decide(note, sync_round)
        if sync_round is not None:
            sync_round.note_reconciled(note.guid, self.remote)
        return result

    def resolve_conflict(
        self,
        sync_round: SyncRound,
        handle: ConflictHandle,
        decision: ConflictDecision,
    ) -> Resolved:
        """Apply the user's *decision* for an escalated conflict."""
        guid = handle.guid
        logger.info("Conflict %s resolved: %s", guid, decision.value)
        with self._guid_lock(guid):
            if decision is ConflictDecision.APPLY_LOCAL:
                local = self._find(guid) or handle.local
                result = self._apply_local(local, sync_round)
            elif decision is ConflictDecision.APPLY_REMOTE:
                result = self._apply_remote(handle.remote)
            else:
                result = Resolved(note=handle.local, action=SyncAction.SKIP)
        sync_round.conflict_resolved(guid, self.remote)
        return result

    # ------------------------------------------------------------------
    # Decision table
    # ------------------------------------------------------------------

    def _decide(
        self, note: Note, sync_round: SyncRound | None
    ) -> ReconcileResult:
        is_push_round = sync_round is not None
        sync_date = sync_round.sync_date if sync_round else None

        local = self._find(note.guid)
        if local is None:
            logger.debug("New note %s (%s)", note.guid, note.title)
            self._upsert(note)
            return Resolved(note=note, action=SyncAction.INSERT)

        cmp_both = compare_dates(local.last_change_date, note.last_change_date)
        cmp_sync_local = compare_dates(sync_date, local.last_change_date)
        cmp_sync_remote = compare_dates(sync_date, note.last_change_date)
        logger.debug(
            "Compare %s: both=%d sync/local=%d sync/remote=%d push=%s",
            note.guid,
            cmp_both,
            cmp_sync_local,
            cmp_sync_remote,
            is_push_round,
        )

        if cmp_both == 0:
            # Content is not compared; the overwrite keeps the store
            # idempotent for identical dates.
            self._upsert(note)
            logger.debug("Same date, refreshed %s", note.guid)
            return Resolved(note=note, action=SyncAction.REFRESH)

        same_side = (cmp_sync_local < 0 and cmp_sync_remote < 0) or (
            cmp_sync_local > 0 and cmp_sync_remote > 0
        )
        if same_side and sync_round is not None:
            logger.info(
                "Conflict on %s (%s): both changed since last sync",
                note.guid,
                note.title,
            )
            handle = sync_round.register_conflict(local, note, cmp_both)
            return AwaitingUser(handle=handle)

        if cmp_both > 0:
            return self._apply_local(local, sync_round)
        return self._apply_remote(note)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _apply_local(
        self, local: Note, sync_round: SyncRound | None
    ) -> Resolved:
        """Local copy wins: push it, or propagate its tombstone."""
        if local.is_deleted:
            logger.info("Deleting %s (%s) remotely", local.guid, local.title)
            self.remote.delete_note(local.guid)
            self._delete(local.guid)
            action = SyncAction.DELETE_REMOTE
        else:
            logger.info("Pushing newer local %s (%s)", local.guid, local.title)
            self.remote.push_note(local)
            action = SyncAction.PUSH
        if sync_round is not None:
            sync_round.record_upload(local.guid)
        return Resolved(note=local, action=action)

    def _apply_remote(self, note: Note) -> Resolved:
        """Incoming copy wins: overwrite the stored fields."""
        logger.info("Pulling newer %s (%s)", note.guid, note.title)
        self._upsert(note)
        return Resolved(note=note, action=SyncAction.PULL)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guid_lock(self, guid: UUID) -> Iterator[None]:
        """Hold the lock for *guid*; the entry is dropped when unused."""
        with self._locks_guard:
            entry = self._locks.get(guid)
            if entry is None:
                entry = self._locks[guid] = _GuidLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[guid]

    def _find(self, guid: UUID) -> Note | None:
        try:
            return self.store.find(guid)
        except IOFailure:
            raise
        except OSError as exc:
            raise IOFailure(f"Cannot read note {guid}: {exc}") from exc

    def _upsert(self, note: Note) -> str:
        try:
            return self.store.upsert(note)
        except IOFailure:
            raise
        except OSError as exc:
            raise IOFailure(f"Cannot store note {note.guid}: {exc}") from exc

    def _delete(self, guid: UUID) -> bool:
        try:
            return self.store.delete(guid)
        except IOFailure:
            raise
        except OSError as exc:
            raise IOFailure(f"Cannot delete note {guid}: {exc}") from exc
