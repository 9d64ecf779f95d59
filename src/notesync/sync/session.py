"""Async driver for a complete sync round.

``SyncSession`` owns the suspend points of a round: the engine returns
``AwaitingUser`` for a true conflict, and the session awaits the
presenter's decision before resuming batch sequencing.  Store and engine
work runs in worker threads so that a slow store or a slow user never
blocks the event loop.

Conflicts are presented newest first; the round's first conflict carries
``is_last_conflict`` and is therefore answered last.
"""

from __future__ import annotations

import inspect
import logging
from typing import Sequence

from notesync.config import Config
from notesync.core.async_utils import run_sync
from notesync.errors import IOFailure
from notesync.note import Note, format_timestamp, now_utc
from notesync.remote import RemoteSyncService
from notesync.store import JsonNoteStore, LocalStore
from notesync.sync.engine import NoteReconciler
from notesync.sync.models import (
    AwaitingUser,
    ConflictDecision,
    ConflictHandle,
    SyncAction,
    SyncReport,
    SyncResult,
)
from notesync.sync.presenter import ConflictPresenter, create_presenter
from notesync.sync.round import SyncRound
from notesync.sync.state import SyncState

logger = logging.getLogger(__name__)


class SyncSession:
    """Run push rounds against one store/remote pair.

    Args:
        reconciler: The reconciliation engine.
        presenter: Answers true conflicts.
        state: Persisted sync baseline.
    """

    def __init__(
        self,
        reconciler: NoteReconciler,
        presenter: ConflictPresenter,
        state: SyncState,
    ) -> None:
        self.reconciler = reconciler
        self.presenter = presenter
        self.state = state

    @classmethod
    def from_config(
        cls, config: Config, store: LocalStore, remote: RemoteSyncService
    ) -> SyncSession:
        """Build a session whose presenter follows ``config.conflict_strategy``."""
        presenter = create_presenter(config.conflict_strategy)
        logger.debug(
            "Sync session: strategy=%s state_dir=%s",
            config.conflict_strategy,
            config.state_dir,
        )
        return cls(
            NoteReconciler(store, remote),
            presenter,
            SyncState(config.state_dir),
        )

    async def run_round(self, incoming: Sequence[Note]) -> SyncReport:
        """Reconcile *incoming* remote notes as one push round.

        Returns:
            A ``SyncReport`` of what was done.

        Raises:
            IOFailure: If the local store fails; retry the whole round.
        """
        started_at = now_utc()
        sync_date = await run_sync(self.state.last_sync_date)
        sync_round = SyncRound.begin(incoming, sync_date)
        logger.info(
            "Sync round started with %d notes (baseline %s)",
            len(incoming),
            format_timestamp(sync_date) if sync_date else "never",
        )

        results: list[SyncResult] = []
        awaiting: list[ConflictHandle] = []

        if not incoming:
            sync_round.finish(self.reconciler.remote)

        for note in incoming:
            try:
                outcome = await run_sync(
                    self.reconciler.reconcile, note, sync_round
                )
            except IOFailure:
                logger.error("Local store failed on %s, aborting round", note.guid)
                raise
            if isinstance(outcome, AwaitingUser):
                awaiting.append(outcome.handle)
                continue
            results.append(_result(outcome.note, outcome.action))

        for handle in reversed(awaiting):
            decision = await self._ask(handle)
            await run_sync(
                self.reconciler.resolve_conflict, sync_round, handle, decision
            )
            results.append(
                _result(
                    handle.remote,
                    SyncAction.CONFLICT,
                    remark=f"resolved: {decision.value}",
                )
            )

        if sync_round.finished:
            await run_sync(self.state.mark_synced, sync_round.started_at)
        else:
            logger.warning("Sync round did not reach its final note")

        return SyncReport(
            push_round=True,
            results=results,
            started_at=format_timestamp(started_at),
            completed_at=format_timestamp(now_utc()),
            finished=sync_round.finished,
        )

    async def local_changes_since_baseline(
        self, store: JsonNoteStore
    ) -> list[Note]:
        """Return local notes changed since the last completed round."""
        sync_date = await run_sync(self.state.last_sync_date)
        return await run_sync(store.new_since, sync_date)

    async def _ask(self, handle: ConflictHandle) -> ConflictDecision:
        decision = self.presenter.present_conflict(
            handle.local,
            handle.remote,
            handle.diff_direction,
            handle.is_last_conflict,
        )
        if inspect.isawaitable(decision):
            decision = await decision
        return ConflictDecision(decision)


def _result(
    note: Note, action: SyncAction, remark: str | None = None
) -> SyncResult:
    return SyncResult(
        guid=note.guid,
        title=note.title,
        action=action,
        success=True,
        error=remark,
    )
