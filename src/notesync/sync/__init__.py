"""Note synchronization and conflict resolution.

Architecture
------------
Reconciliation is **timestamp based**: every incoming note is compared to
the stored note with the same guid using three UTC instants -- the two
change dates and the baseline of the last completed round.  Bodies are
never merged; a true conflict (both sides changed since the baseline) is
escalated to a presenter and both stores stay untouched until it answers.

Modules:

- ``engine``    -- ``NoteReconciler``: the per-note decision table.
- ``round``     -- ``SyncRound``: batch sequencing and the terminal call.
- ``session``   -- ``SyncSession``: async driver for a complete round.
- ``presenter`` -- Conflict presenter protocol and unattended strategies.
- ``state``     -- ``SyncState``: persisted sync baseline.
- ``models``    -- ``SyncAction``, ``ConflictDecision``, ``ConflictHandle``,
  ``Resolved``, ``AwaitingUser``, ``SyncResult``, ``SyncReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from notesync.config import load_config
    from notesync.store import JsonNoteStore
    from notesync.sync import SyncSession, format_sync_report

    config = load_config()
    store = JsonNoteStore(config.store_path)
    # remote: RemoteSyncService; presenter from config.conflict_strategy
    session = SyncSession.from_config(config, store, remote)

    report = await session.run_round(incoming_notes)
    print(format_sync_report(report))
"""

from .engine import NoteReconciler
from .models import (
    AwaitingUser,
    ConflictDecision,
    ConflictHandle,
    Resolved,
    SyncAction,
    SyncReport,
    SyncResult,
)
from .presenter import (
    ConflictPresenter,
    DeferPresenter,
    LocalWinsPresenter,
    RemoteWinsPresenter,
    create_presenter,
)
from .reporter import format_conflict_diff, format_sync_report, report_to_json
from .round import SyncRound
from .session import SyncSession
from .state import SyncState

__all__ = [
    "AwaitingUser",
    "ConflictDecision",
    "ConflictHandle",
    "ConflictPresenter",
    "DeferPresenter",
    "LocalWinsPresenter",
    "NoteReconciler",
    "RemoteWinsPresenter",
    "Resolved",
    "SyncAction",
    "SyncReport",
    "SyncResult",
    "SyncRound",
    "SyncSession",
    "SyncState",
    "create_presenter",
    "format_conflict_diff",
    "format_sync_report",
    "report_to_json",
]
