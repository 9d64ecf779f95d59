"""Tests for the reconciliation engine decision table.

Covers:
- Insert when nothing is stored
- Same change date refreshes (idempotent)
- True conflict in a push round: no mutation, handle returned
- Same situation outside a round is not a conflict
- Newer local: push, or delete remotely and locally when tombstoned
- Newer incoming: pull
- Conflict resolution decisions
- Store failures surface as IOFailure
"""

from __future__ import annotations

import threading
import uuid
from unittest.mock import MagicMock

import pytest

from conftest import BASE_TIME, FakeRemote, at, make_note
from notesync.errors import IOFailure
from notesync.note import NoteLifecycle
from notesync.sync.engine import NoteReconciler
from notesync.sync.models import (
    AwaitingUser,
    ConflictDecision,
    Resolved,
    SyncAction,
)
from notesync.sync.round import SyncRound

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round_for(*notes, sync_minutes: int | None = 0) -> SyncRound:
    sync_date = None if sync_minutes is None else at(sync_minutes)
    return SyncRound.begin(list(notes), sync_date)


# ---------------------------------------------------------------------------
# Import mode (no round)
# ---------------------------------------------------------------------------


class TestImport:
    def test_insert_new_note(self, store, remote: FakeRemote):
        note = make_note()
        result = NoteReconciler(store, remote).reconcile(note)

        assert isinstance(result, Resolved)
        assert result.action is SyncAction.INSERT
        assert store.find(note.guid) == note
        assert remote.calls == []

    def test_same_date_refresh_is_idempotent(self, store, remote):
        note = make_note(minutes=5)
        engine = NoteReconciler(store, remote)
        engine.reconcile(note)
        before = store.list_by_guid_date()

        again = make_note(guid=note.guid, minutes=5)
        result = engine.reconcile(again)

        assert result.action is SyncAction.REFRESH
        after = store.list_by_guid_date()
        assert [(n.guid, n.title, n.xml_content, n.last_change_date) for n in after] == [
            (n.guid, n.title, n.xml_content, n.last_change_date) for n in before
        ]
        assert remote.calls == []

    def test_same_date_overwrites_fields(self, store, remote):
        note = make_note(minutes=5, content="<note-content>old</note-content>")
        engine = NoteReconciler(store, remote)
        engine.reconcile(note)

        engine.reconcile(
            make_note(
                guid=note.guid,
                minutes=5,
                content="<note-content>new</note-content>",
            )
        )
        assert "new" in store.find(note.guid).xml_content

    def test_newer_incoming_is_pulled(self, store, remote):
        note = make_note(minutes=1, title="old")
        store.upsert(note)
        incoming = make_note(guid=note.guid, minutes=10, title="new")

        result = NoteReconciler(store, remote).reconcile(incoming)

        assert result.action is SyncAction.PULL
        assert store.find(note.guid).title == "new"
        assert remote.calls == []

    def test_newer_local_is_pushed(self, store, remote):
        local = make_note(minutes=10)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=1)

        result = NoteReconciler(store, remote).reconcile(incoming)

        assert result.action is SyncAction.PUSH
        assert remote.calls == [("push_note", local.guid)]

    def test_import_never_escalates(self, store, remote):
        """Differing dates never escalate outside a round."""
        local = make_note(minutes=10)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20)

        result = NoteReconciler(store, remote).reconcile(incoming)

        assert result.action is SyncAction.PULL


# ---------------------------------------------------------------------------
# Push round
# ---------------------------------------------------------------------------


class TestPushRound:
    def test_true_conflict_leaves_both_stores_untouched(self, store, remote):
        local = make_note(minutes=10, title="mine")
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20, title="theirs")
        sync_round = _round_for(incoming, make_note(), sync_minutes=0)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert isinstance(result, AwaitingUser)
        assert result.action is SyncAction.CONFLICT
        assert result.handle.local.title == "mine"
        assert result.handle.remote.title == "theirs"
        assert result.handle.diff_direction == -1
        assert result.handle.is_last_conflict is True
        assert store.find(local.guid).title == "mine"
        assert remote.calls == []

    def test_both_before_baseline_is_also_a_conflict(self, store, remote):
        local = make_note(minutes=10)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20)
        sync_round = _round_for(incoming, make_note(), sync_minutes=30)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert isinstance(result, AwaitingUser)

    def test_never_synced_differing_dates_conflict(self, store, remote):
        local = make_note(minutes=10)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20)
        sync_round = _round_for(incoming, make_note(), sync_minutes=None)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert isinstance(result, AwaitingUser)

    def test_only_local_changed_pushes(self, store, remote):
        local = make_note(minutes=20)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=-10)
        sync_round = _round_for(incoming, make_note(), sync_minutes=0)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert result.action is SyncAction.PUSH
        assert remote.calls == [("push_note", local.guid)]
        assert sync_round.last_upload_guid == local.guid

    def test_only_remote_changed_pulls(self, store, remote):
        local = make_note(minutes=-10, title="old")
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20, title="new")
        sync_round = _round_for(incoming, make_note(), sync_minutes=0)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert result.action is SyncAction.PULL
        assert store.find(local.guid).title == "new"

    def test_tombstone_deleted_remotely_and_locally(self, store, remote):
        local = make_note(minutes=20, lifecycle=NoteLifecycle.DELETED)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=-10)
        sync_round = _round_for(incoming, make_note(), sync_minutes=0)

        result = NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert result.action is SyncAction.DELETE_REMOTE
        assert remote.calls == [("delete_note", local.guid)]
        assert store.find(local.guid) is None
        assert sync_round.last_upload_guid == local.guid

    def test_final_note_makes_terminal_call(self, store, remote):
        incoming = make_note()
        sync_round = _round_for(incoming)

        NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert remote.terminal_calls == [("finish_sync", True)]
        assert sync_round.finished

    def test_final_upload_becomes_sentinel(self, store, remote):
        local = make_note(minutes=20)
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=-10)
        sync_round = _round_for(incoming)

        NoteReconciler(store, remote).reconcile(incoming, sync_round)

        assert remote.terminal_calls == [("set_last_guid", local.guid)]


# ---------------------------------------------------------------------------
# Conflict resolution
# ---------------------------------------------------------------------------


class TestResolveConflict:
    def _escalate(self, store, remote):
        local = make_note(minutes=10, title="mine")
        store.upsert(local)
        incoming = make_note(guid=local.guid, minutes=20, title="theirs")
        sync_round = _round_for(incoming)
        engine = NoteReconciler(store, remote)
        handle = engine.reconcile(incoming, sync_round).handle
        return engine, sync_round, handle

    def test_apply_local_pushes_and_finishes(self, store, remote):
        engine, sync_round, handle = self._escalate(store, remote)
        assert remote.terminal_calls == []

        result = engine.resolve_conflict(
            sync_round, handle, ConflictDecision.APPLY_LOCAL
        )

        assert result.action is SyncAction.PUSH
        assert remote.calls == [
            ("push_note", handle.guid),
            ("set_last_guid", handle.guid),
        ]

    def test_apply_remote_overwrites_and_finishes(self, store, remote):
        engine, sync_round, handle = self._escalate(store, remote)

        result = engine.resolve_conflict(
            sync_round, handle, ConflictDecision.APPLY_REMOTE
        )

        assert result.action is SyncAction.PULL
        assert store.find(handle.guid).title == "theirs"
        assert remote.terminal_calls == [("finish_sync", True)]

    def test_defer_changes_nothing(self, store, remote):
        engine, sync_round, handle = self._escalate(store, remote)

        result = engine.resolve_conflict(
            sync_round, handle, ConflictDecision.DEFER
        )

        assert result.action is SyncAction.SKIP
        assert store.find(handle.guid).title == "mine"
        assert remote.calls == [("finish_sync", True)]


# ---------------------------------------------------------------------------
# Failures and concurrency
# ---------------------------------------------------------------------------


class TestFailures:
    def test_os_error_becomes_io_failure(self, remote):
        broken = MagicMock()
        broken.find.side_effect = PermissionError("read-only")
        with pytest.raises(IOFailure):
            NoteReconciler(broken, remote).reconcile(make_note())

    def test_io_failure_passes_through(self, remote):
        broken = MagicMock()
        broken.find.return_value = None
        broken.upsert.side_effect = IOFailure("disk full")
        with pytest.raises(IOFailure, match="disk full"):
            NoteReconciler(broken, remote).reconcile(make_note())


class TestConcurrency:
    def test_same_guid_from_many_threads_inserts_once(self, store, remote):
        guid = uuid.uuid4()
        engine = NoteReconciler(store, remote)
        actions: list[SyncAction] = []
        lock = threading.Lock()

        def work():
            result = engine.reconcile(make_note(guid=guid, minutes=0))
            with lock:
                actions.append(result.action)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert actions.count(SyncAction.INSERT) == 1
        assert actions.count(SyncAction.REFRESH) == 7
        assert len(store.list_by_guid_date()) == 1
        assert store.find(guid).last_change_date == BASE_TIME

    def test_guid_locks_released_after_use(self, store, remote):
        engine = NoteReconciler(store, remote)
        for _ in range(20):
            engine.reconcile(make_note())
        assert engine._locks == {}

    def test_guid_lock_released_when_store_fails(self, remote):
        broken = MagicMock()
        broken.find.side_effect = IOFailure("unreadable")
        engine = NoteReconciler(broken, remote)
        with pytest.raises(IOFailure):
            engine.reconcile(make_note())
        assert engine._locks == {}
