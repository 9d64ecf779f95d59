"""Unified configuration schema for notesync.

Defines Pydantic models for the unified config structure with dedicated
sections for the note directory, sync behaviour and logging.  Includes an
adapter producing the runtime ``Config`` dataclass.

Usage:
    from notesync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"worker_count": 4})
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class NotesConfig(BaseModel):
    """Note document and local store settings."""

    notes_dir: str | None = Field(
        default=None, description="Directory holding .note documents"
    )
    suffix: str = Field(
        default=".note", description="File name suffix of note documents"
    )
    worker_count: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Parser worker threads (1-64); 1 parses sequentially",
    )
    include_templates_in_listing: bool = Field(
        default=False, description="Show template notes in listings"
    )
    store_path: str | None = Field(
        default=None, description="Local note store file"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync round settings."""

    state_dir: str = Field(
        default=".notesync", description="Directory for sync state"
    )
    conflict_strategy: Literal["defer", "local-wins", "remote-wins"] = Field(
        default="defer",
        description="How unattended rounds answer true conflicts",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: Record format, ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    notes: NotesConfig = Field(default_factory=NotesConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def yaml_fallbacks(self) -> dict:
        """Flatten the ``notes`` and ``sync`` sections for ``load_config()``."""
        merged = self.notes.model_dump(exclude_none=True)
        merged.update(self.sync.model_dump(exclude_none=True))
        return merged


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a section holds invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> runtime Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the runtime ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > built-in default

    CLI overrides dict keys: notes_dir, worker_count, include_templates,
    debug.

    Returns:
        ``Config`` instance (NOT validated -- caller should run
        ``validate_config()`` separately if needed).
    """
    from .config import Config

    overrides = cli_overrides or {}
    notes, sync = unified.notes, unified.sync

    state_dir = Path(sync.state_dir).expanduser()
    store_path = (
        Path(notes.store_path).expanduser()
        if notes.store_path
        else state_dir / "notes.json"
    )

    return Config(
        notes_dir=Path(overrides.get("notes_dir") or notes.notes_dir or "notes"),
        store_path=store_path,
        state_dir=state_dir,
        suffix=notes.suffix,
        worker_count=overrides.get("worker_count") or notes.worker_count,
        include_templates=overrides.get("include_templates", False)
        or notes.include_templates_in_listing,
        conflict_strategy=sync.conflict_strategy,
        debug=overrides.get("debug", False),
    )
