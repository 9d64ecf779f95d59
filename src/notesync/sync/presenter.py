"""Conflict presenter strategies.

The reconciliation engine never decides a true conflict itself; it hands
both versions to a ``ConflictPresenter`` and waits for a decision.  A UI
implements the protocol with a dialog (returning an awaitable).  For
unattended use the package ships:

- ``LocalWinsPresenter``: Always keeps the local version.
- ``RemoteWinsPresenter``: Always keeps the remote version.
- ``DeferPresenter``: Decides nothing; accumulates conflicts for later
  human review and leaves both stores untouched.

The ``create_presenter()`` factory maps config strategy strings to
presenter instances.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Protocol, Union

from notesync.note import Note
from notesync.sync.models import ConflictDecision, ConflictHandle

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictPresenter(Protocol):
    """Protocol that all conflict presenters must satisfy."""

    def present_conflict(
        self,
        local: Note,
        remote: Note,
        diff_direction: int,
        is_last_conflict: bool,
    ) -> Union[ConflictDecision, Awaitable[ConflictDecision]]:
        """Ask for a decision on a conflicting pair.

        Args:
            local: The stored note.
            remote: The incoming note.
            diff_direction: Positive when the local copy is newer.
            is_last_conflict: True for the conflict that closes the batch,
                so a UI can chain to batch completion.

        Returns:
            The decision, or an awaitable resolving to it.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Simple presenters
# ---------------------------------------------------------------------------


class LocalWinsPresenter:
    """Always resolve conflicts in favour of the local note."""

    def present_conflict(
        self,
        local: Note,
        remote: Note,
        diff_direction: int,
        is_last_conflict: bool,
    ) -> ConflictDecision:
        return ConflictDecision.APPLY_LOCAL


class RemoteWinsPresenter:
    """Always resolve conflicts in favour of the remote note."""

    def present_conflict(
        self,
        local: Note,
        remote: Note,
        diff_direction: int,
        is_last_conflict: bool,
    ) -> ConflictDecision:
        return ConflictDecision.APPLY_REMOTE


class DeferPresenter:
    """Leave conflicts unresolved and remember them for human review.

    Deferred notes stay conflicting: both copies keep their change dates,
    so the next round escalates them again.
    """

    def __init__(self) -> None:
        self.pending_conflicts: list[ConflictHandle] = []

    def present_conflict(
        self,
        local: Note,
        remote: Note,
        diff_direction: int,
        is_last_conflict: bool,
    ) -> ConflictDecision:
        logger.info(
            "Conflict for %s (%s) deferred for review", remote.guid, remote.title
        )
        self.pending_conflicts.append(
            ConflictHandle(
                local=local,
                remote=remote,
                diff_direction=diff_direction,
                is_last_conflict=is_last_conflict,
            )
        )
        return ConflictDecision.DEFER


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "defer": DeferPresenter,
    "local-wins": LocalWinsPresenter,
    "remote-wins": RemoteWinsPresenter,
}


def create_presenter(strategy: str) -> ConflictPresenter:
    """Create a conflict presenter for the given strategy string.

    Args:
        strategy: One of ``"defer"``, ``"local-wins"``, ``"remote-wins"``.

    Returns:
        A ``ConflictPresenter`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
