"""Command line entry point for notesync.

Subcommands:

- ``import [DIR] [--workers N]``: parse a directory of note documents into
  the local store.
- ``list [--templates] [--query Q]``: list live notes, newest first.
- ``purge-deleted``: physically remove every tombstone.

All diagnostics go to stderr; listings and summaries go to stdout.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .errors import NoteSyncError
from .loader import LoaderSignal, NoteLoader
from .logger import LOG_FORMATS, setup_logging
from .note import format_timestamp
from .remote import OutboxRemote
from .store import JsonNoteStore
from .sync.engine import NoteReconciler

logger = logging.getLogger(__name__)

_SIGNAL_MESSAGES = {
    LoaderSignal.PARSING_COMPLETE: "Finished loading notes.",
    LoaderSignal.PARSING_FAILED: "Some notes could not be loaded.",
    LoaderSignal.PARSING_NO_NOTES: "There are no notes to load.",
}


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr)


def _load_settings(args: argparse.Namespace) -> tuple[Config, UnifiedConfig]:
    """Resolve configuration: CLI > env (.env loaded first) > YAML > defaults."""
    load_dotenv()

    unified = UnifiedConfig()
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        logger.debug("Config file: %s", config_files[0])

    config = load_config(
        notes_dir=getattr(args, "directory", None),
        worker_count=getattr(args, "workers", None),
        include_templates=getattr(args, "templates", False),
        debug=args.debug,
        yaml_fallbacks=unified.yaml_fallbacks(),
    )
    return config, unified


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_import(config: Config) -> int:
    store = JsonNoteStore(config.store_path)
    remote = OutboxRemote()
    reconciler = NoteReconciler(store, remote)

    def notify(signal: LoaderSignal) -> None:
        _stderr_print(_SIGNAL_MESSAGES[signal])

    loader = NoteLoader(
        config.notes_dir,
        submit=reconciler.reconcile,
        notify=notify,
        worker_count=config.worker_count,
        suffix=config.suffix,
    )
    result = loader.load_blocking()

    print(f"Loaded {len(result.loaded)} notes from {config.notes_dir}")
    for path, error in sorted(result.failures.items()):
        print(f"  FAILED {path}: {error}")
    if remote.queued:
        print(f"{remote.queued} newer local notes queued for upload")
    return 0 if result.ok else 1


def cmd_list(config: Config, query: str | None) -> int:
    store = JsonNoteStore(config.store_path)
    notes = store.list_notes(
        include_templates=config.include_templates, query=query
    )
    for note in notes:
        marker = " [template]" if note.is_template else ""
        print(
            f"{format_timestamp(note.last_change_date)}  {note.guid}  "
            f"{note.title}{marker}"
        )
    if not notes:
        _stderr_print("No notes.")
    return 0


def cmd_purge_deleted(config: Config) -> int:
    store = JsonNoteStore(config.store_path)
    count = store.purge_deleted()
    print(f"Purged {count} deleted notes")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notesync",
        description="notesync - local note store with timestamp-based sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import a Tomboy note directory with four parser threads
  notesync import ~/.local/share/tomboy --workers 4

  # Search live notes, templates included
  notesync list --templates --query "meeting notes"

  # Drop every note marked deleted
  notesync purge-deleted
        """,
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file", help="Also write log records to this file"
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        help="Log record format (default: text, or logging.format from config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"notesync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Load note documents")
    p_import.add_argument(
        "directory",
        nargs="?",
        help="Note directory (overrides NOTESYNC_NOTES_DIR and config files)",
    )
    p_import.add_argument(
        "--workers", type=int, help="Parser worker threads (default: 1)"
    )

    p_list = sub.add_parser("list", help="List notes")
    p_list.add_argument(
        "--templates", action="store_true", help="Include template notes"
    )
    p_list.add_argument("--query", help="Whitespace-separated search terms")

    sub.add_parser("purge-deleted", help="Remove notes marked deleted")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config, unified = _load_settings(args)
    except (ValueError, ValidationError) as e:
        setup_logging(
            debug=args.debug,
            log_file=args.log_file,
            log_format=args.log_format or "text",
        )
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 2

    setup_logging(
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        if args.command == "import":
            return cmd_import(config)
        if args.command == "list":
            return cmd_list(config, args.query)
        return cmd_purge_deleted(config)
    except NoteSyncError as e:
        logger.error("%s failed: %s", args.command, e)
        _stderr_print(f"ERROR: {e}")
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    run()
