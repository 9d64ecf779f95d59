"""Sync state persistence layer.

Stores the sync baseline -- the UTC timestamp of the last fully completed
round -- in ``sync_state.json`` inside the state directory
(``.notesync/`` by default).

* **Atomic writes** -- ``save()`` goes through ``atomic_write_text()`` so
  readers never see partial data.
* **Dict-based state** -- state is a plain ``dict`` so future keys can be
  added without a schema migration.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from notesync.errors import IOFailure
from notesync.file_handler import atomic_write_text
from notesync.note import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

STATE_FILE = "sync_state.json"


class SyncState:
    """Load and save the persisted sync baseline.

    Args:
        state_dir: Directory holding the state file.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILE

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict:
        """Load sync state from disk.

        Returns:
            The state dict.  If the file does not exist an empty state
            with ``version=1`` is returned.

        Raises:
            IOFailure: If the file exists but cannot be read.
        """
        if not self.path.exists():
            return {"version": 1, "last_sync": None}
        try:
            with open(self.path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise IOFailure(f"Cannot read sync state {self.path}: {exc}") from exc

    def save(self, state: dict) -> None:
        """Persist *state* atomically, creating the state directory."""
        atomic_write_text(self.path, json.dumps(state, indent=2))

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def last_sync_date(self) -> datetime | None:
        """Return the baseline, or ``None`` if the client never synced.

        Raises:
            MalformedTimestamp: If the stored value is corrupt.
        """
        raw = self.load().get("last_sync")
        if not raw:
            return None
        return parse_timestamp(raw)

    def mark_synced(self, when: datetime) -> None:
        """Record *when* as the new baseline."""
        state = self.load()
        state["last_sync"] = format_timestamp(when)
        self.save(state)
        logger.debug("Sync baseline set to %s", state["last_sync"])
