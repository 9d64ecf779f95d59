"""Tests for conflict presenter strategies."""

from __future__ import annotations

import pytest

from conftest import make_note
from notesync.sync.models import ConflictDecision
from notesync.sync.presenter import (
    DeferPresenter,
    LocalWinsPresenter,
    RemoteWinsPresenter,
    create_presenter,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _present(presenter, is_last: bool = False):
    local = make_note(minutes=10)
    remote = make_note(guid=local.guid, minutes=20)
    return presenter.present_conflict(local, remote, -1, is_last)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TestSimplePresenters:
    def test_local_wins(self) -> None:
        assert _present(LocalWinsPresenter()) is ConflictDecision.APPLY_LOCAL

    def test_remote_wins(self) -> None:
        assert _present(RemoteWinsPresenter()) is ConflictDecision.APPLY_REMOTE


class TestDeferPresenter:
    def test_defers_and_records(self) -> None:
        presenter = DeferPresenter()
        assert _present(presenter, is_last=True) is ConflictDecision.DEFER
        assert len(presenter.pending_conflicts) == 1
        handle = presenter.pending_conflicts[0]
        assert handle.is_last_conflict is True
        assert handle.diff_direction == -1

    def test_accumulates(self) -> None:
        presenter = DeferPresenter()
        _present(presenter)
        _present(presenter)
        assert len(presenter.pending_conflicts) == 2


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreatePresenter:
    @pytest.mark.parametrize(
        "strategy,cls",
        [
            ("defer", DeferPresenter),
            ("local-wins", LocalWinsPresenter),
            ("remote-wins", RemoteWinsPresenter),
        ],
    )
    def test_known_strategies(self, strategy, cls) -> None:
        assert isinstance(create_presenter(strategy), cls)

    def test_fresh_instance_each_call(self) -> None:
        assert create_presenter("defer") is not create_presenter("defer")

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_presenter("merge")
