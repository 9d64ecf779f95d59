"""Pydantic models for the reconciliation engine.

Defines the core data contracts used across all sync modules:

- ``SyncAction``: Enum of reconciliation outcomes.
- ``ConflictDecision``: The user's answer to a conflict.
- ``ConflictHandle``: A conflict waiting for that answer.
- ``Resolved`` / ``AwaitingUser``: Result of reconciling one note.
- ``SyncResult``: Outcome of syncing one note, for reporting.
- ``SyncReport``: Aggregate results for a full round.

Reporting models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Union
from uuid import UUID

from pydantic import BaseModel

from notesync.note import Note


class SyncAction(str, Enum):
    """Possible outcomes of reconciling one note."""

    INSERT = "insert"
    REFRESH = "refresh"
    PUSH = "push"
    DELETE_REMOTE = "delete_remote"
    PULL = "pull"
    CONFLICT = "conflict"
    SKIP = "skip"


class ConflictDecision(str, Enum):
    """How the user chose to resolve a conflict."""

    APPLY_LOCAL = "apply_local"
    APPLY_REMOTE = "apply_remote"
    DEFER = "defer"


class ConflictHandle(BaseModel):
    """A true conflict escalated to the presenter.

    Attributes:
        local: The stored note.
        remote: The incoming note.
        diff_direction: Sign of ``compare(local, remote)`` change dates.
        is_last_conflict: True for the conflict that closes the batch.
    """

    local: Note
    remote: Note
    diff_direction: int
    is_last_conflict: bool = False

    model_config = {"frozen": True}

    @property
    def guid(self) -> UUID:
        return self.remote.guid


class Resolved(BaseModel):
    """Reconciliation finished; *note* is the version that won."""

    note: Note
    action: SyncAction

    model_config = {"frozen": True}


class AwaitingUser(BaseModel):
    """Reconciliation is suspended until *handle* gets a decision."""

    handle: ConflictHandle

    model_config = {"frozen": True}

    @property
    def action(self) -> SyncAction:
        return SyncAction.CONFLICT


ReconcileResult = Union[Resolved, AwaitingUser]


class SyncResult(BaseModel):
    """Result of syncing one note.

    Attributes:
        guid: Note identity.
        title: Note title, for display.
        action: What the engine did.
        success: Whether the step succeeded.
        error: Error message or remark.
    """

    guid: UUID
    title: str
    action: SyncAction
    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync round.

    Attributes:
        push_round: False for a first-time import.
        results: Per-note results, in reconciliation order.
        started_at: ISO 8601 timestamp when the round started.
        completed_at: ISO 8601 timestamp when the round completed.
        finished: Whether the terminal call was made.
    """

    push_round: bool = True
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None
    finished: bool = False

    model_config = {"frozen": True}

    def _with(self, *actions: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action in actions]

    @property
    def inserted(self) -> list[SyncResult]:
        return self._with(SyncAction.INSERT)

    @property
    def pushed(self) -> list[SyncResult]:
        return self._with(SyncAction.PUSH)

    @property
    def pulled(self) -> list[SyncResult]:
        return self._with(SyncAction.PULL)

    @property
    def deleted(self) -> list[SyncResult]:
        return self._with(SyncAction.DELETE_REMOTE)

    @property
    def refreshed(self) -> list[SyncResult]:
        return self._with(SyncAction.REFRESH)

    @property
    def conflicts(self) -> list[SyncResult]:
        return self._with(SyncAction.CONFLICT)

    @property
    def skipped(self) -> list[SyncResult]:
        return self._with(SyncAction.SKIP)

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Format a human-readable summary of the round.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            "Sync round" if self.push_round else "Import",
            f"  Inserted:   {len(self.inserted)}",
            f"  Pushed:     {len(self.pushed)}",
            f"  Pulled:     {len(self.pulled)}",
            f"  Deleted:    {len(self.deleted)}",
            f"  Unchanged:  {len(self.refreshed)}",
            f"  Conflicts:  {len(self.conflicts)}",
            f"  Errors:     {len(self.errors)}",
            f"  Total:      {len(self.results)}",
        ]
        return "\n".join(lines)
