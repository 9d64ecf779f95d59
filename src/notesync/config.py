"""Runtime configuration for the notesync client.

Reads note directory, store and sync settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTESYNC_NOTES_DIR: Directory holding ``.note`` documents (default: ./notes)
    NOTESYNC_WORKER_COUNT: Parser worker threads (optional, default: 1)
    NOTESYNC_STORE_PATH: Local note store file (default: <state_dir>/notes.json)
    NOTESYNC_INCLUDE_TEMPLATES: List template notes (optional, default: false)
    NOTESYNC_STATE_DIR: Sync state directory (optional, default: .notesync)
    NOTESYNC_CONFLICT_STRATEGY: defer, local-wins or remote-wins (default: defer)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CONFLICT_STRATEGIES = ("defer", "local-wins", "remote-wins")
MAX_WORKERS = 64


@dataclass
class Config:
    notes_dir: Path
    store_path: Path
    state_dir: Path = Path(".notesync")
    suffix: str = ".note"
    worker_count: int = 1
    include_templates: bool = False
    conflict_strategy: str = "defer"
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the worker count, suffix or strategy is invalid.
    """
    if not (1 <= config.worker_count <= MAX_WORKERS):
        raise ValueError(
            f"Invalid worker count {config.worker_count}: "
            f"must be a number between 1 and {MAX_WORKERS}"
        )

    config.suffix = config.suffix.strip()
    if not config.suffix.startswith("."):
        raise ValueError(
            f"Invalid note suffix '{config.suffix}': must start with '.'"
        )

    if config.conflict_strategy not in CONFLICT_STRATEGIES:
        raise ValueError(
            f"Invalid conflict strategy '{config.conflict_strategy}': "
            f"must be one of {', '.join(CONFLICT_STRATEGIES)}"
        )

    if config.notes_dir.exists() and not config.notes_dir.is_dir():
        raise ValueError(
            f"Notes path '{config.notes_dir}' exists but is not a directory"
        )


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    notes_dir: str | None = None,
    worker_count: int | None = None,
    include_templates: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        notes_dir: Override notes directory (CLI positional argument).
        worker_count: Override parser worker count (``--workers``).
        include_templates: List template notes (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Merged ``notes`` and ``sync`` sections of the YAML
            config.  Used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is invalid after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- Path fields: CLI > env > YAML > default ---

    final_notes_dir = Path(
        notes_dir
        or os.getenv("NOTESYNC_NOTES_DIR")
        or fb.get("notes_dir")
        or "notes"
    ).expanduser()

    final_state_dir = Path(
        os.getenv("NOTESYNC_STATE_DIR") or fb.get("state_dir") or ".notesync"
    ).expanduser()

    store_raw = os.getenv("NOTESYNC_STORE_PATH") or fb.get("store_path")
    final_store_path = (
        Path(store_raw).expanduser() if store_raw else final_state_dir / "notes.json"
    )

    strategy = (
        os.getenv("NOTESYNC_CONFLICT_STRATEGY")
        or fb.get("conflict_strategy")
        or "defer"
    ).strip().lower()

    # --- Boolean fields: CLI > env > YAML > default ---

    if include_templates:
        final_templates = True
    else:
        env_templates = get_bool_env("NOTESYNC_INCLUDE_TEMPLATES")
        if env_templates is not None:
            final_templates = env_templates
        else:
            final_templates = bool(fb.get("include_templates_in_listing", False))

    # --- Numeric fields: CLI > env > YAML > default ---

    workers_raw = os.getenv("NOTESYNC_WORKER_COUNT")
    if worker_count is not None:
        final_workers = worker_count
    elif workers_raw is not None:
        try:
            final_workers = int(workers_raw)
        except ValueError:
            raise ValueError(
                f"Invalid NOTESYNC_WORKER_COUNT '{workers_raw}': "
                f"must be a number between 1 and {MAX_WORKERS}"
            ) from None
    elif "worker_count" in fb:
        final_workers = int(fb["worker_count"])
    else:
        final_workers = 1

    config = Config(
        notes_dir=final_notes_dir,
        store_path=final_store_path,
        state_dir=final_state_dir,
        suffix=fb.get("suffix", ".note"),
        worker_count=final_workers,
        include_templates=final_templates,
        conflict_strategy=strategy,
        debug=debug,
    )

    validate_config(config)

    return config
