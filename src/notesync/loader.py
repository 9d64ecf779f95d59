"""Concurrent ingestion pipeline for on-disk note documents.

``NoteLoader`` turns a directory of ``.note`` documents into ``Note``
records and hands each one to a submit callable (normally
``NoteReconciler.reconcile``).  Parsing runs in worker threads bounded by
``worker_count``; the default of one worker makes the batch sequential.

Each document is read twice:

1. streamed through lxml's ``iterparse`` for the structured fields
   (title, change date, tags) -- the guid comes from the file name;
2. scanned as raw text for the ``<note-content>`` fragment, which is kept
   byte-for-byte.

The UI is notified through ``LoaderSignal`` values:

* ``PARSING_NO_NOTES`` once, when the directory holds no documents;
* ``PARSING_FAILED`` at most once per batch, on the first failed document;
* ``PARSING_COMPLETE`` exactly once, after every worker has finished.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from lxml import etree

from notesync.core.async_utils import gather_limited, run_sync, run_sync_limited
from notesync.errors import (
    IOFailure,
    MalformedDocument,
    MissingContentFragment,
    NoteSyncError,
)
from notesync.file_handler import (
    DEFAULT_SUFFIX,
    list_documents,
    read_file_with_encoding,
)
from notesync.note import Note, parse_timestamp, strip_title_from_content

logger = logging.getLogger(__name__)

_NOTE_CONTENT = re.compile(
    r"<note-content[^>]*>.*</note-content>", re.IGNORECASE | re.DOTALL
)


class LoaderSignal(str, Enum):
    """Batch-level messages sent to the UI."""

    PARSING_COMPLETE = "parsing_complete"
    PARSING_FAILED = "parsing_failed"
    PARSING_NO_NOTES = "parsing_no_notes"


@dataclass
class LoadResult:
    """Outcome of one ingestion batch."""

    loaded: list[Note] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


# =============================================================================
# Parsing
# =============================================================================


def parse_note_file(path: Path, suffix: str = DEFAULT_SUFFIX) -> Note:
    """Parse one note document.

    Raises:
        MalformedDocument: If the file name is not a guid, the XML is not
            well formed, or the change date is missing.
        MalformedTimestamp: If the change date cannot be parsed.
        IOFailure: If the file cannot be read.
    """
    stem = path.name[: -len(suffix)] if path.name.endswith(suffix) else path.stem
    try:
        guid = UUID(stem)
    except ValueError:
        raise MalformedDocument(str(path), "file name is not a guid") from None

    title, raw_date, tags = _parse_structure(path)
    if raw_date is None:
        raise MalformedDocument(str(path), "missing last-change-date")

    note = Note.from_tags(
        guid,
        tags,
        title=title,
        last_change_date=parse_timestamp(raw_date),
        file_name=str(path),
    )

    raw, _ = read_file_with_encoding(path)
    try:
        fragment = _extract_content(raw, path)
    except MissingContentFragment as exc:
        logger.warning("%s; continuing with empty content", exc)
        fragment = ""
    note.set_content_preserving_timestamp(
        strip_title_from_content(fragment, title)
    )
    return note


def _parse_structure(path: Path) -> tuple[str, str | None, list[str]]:
    title = ""
    raw_date: str | None = None
    tags: list[str] = []
    try:
        for _event, elem in etree.iterparse(str(path), events=("end",)):
            parent = elem.getparent()
            if parent is None:
                continue
            name = etree.QName(elem).localname
            parent_name = etree.QName(parent).localname
            if parent_name == "note" and name == "title":
                title = elem.text or ""
            elif parent_name == "note" and name == "last-change-date":
                raw_date = (elem.text or "").strip()
            elif parent_name == "tags" and name == "tag":
                tags.append(elem.text or "")
    except etree.XMLSyntaxError as exc:
        raise MalformedDocument(str(path), str(exc)) from exc
    except OSError as exc:
        raise IOFailure(f"Cannot read {path}: {exc}") from exc
    return title, raw_date, tags


def _extract_content(raw: str, path: Path) -> str:
    m = _NOTE_CONTENT.search(raw)
    if not m:
        raise MissingContentFragment(str(path))
    return m.group(0)


# =============================================================================
# Pipeline
# =============================================================================


class _Batch:
    """Completion counting shared by the workers of one batch."""

    def __init__(self, size: int) -> None:
        self.remaining = size
        self.failed = False
        self.result = LoadResult()
        self._lock = threading.Lock()

    def add(self, note: Note) -> None:
        with self._lock:
            self.result.loaded.append(note)

    def fail(self, path: Path, exc: Exception) -> bool:
        """Record a failure; True if it is the first of the batch."""
        with self._lock:
            self.result.failures[str(path)] = str(exc)
            first = not self.failed
            self.failed = True
            return first

    def finish_one(self) -> bool:
        """Count one finished worker; True for the last one."""
        with self._lock:
            self.remaining -= 1
            return self.remaining == 0


class NoteLoader:
    """Load a directory of note documents into the reconciliation engine.

    Args:
        notes_dir: Directory holding the documents.
        submit: Called synchronously with each parsed note.
        notify: Receives the batch-level ``LoaderSignal`` values.
        worker_count: Maximum documents parsed at once.
        suffix: File name suffix of note documents.
    """

    def __init__(
        self,
        notes_dir: Path,
        submit: Callable[[Note], Any],
        notify: Callable[[LoaderSignal], None],
        worker_count: int = 1,
        suffix: str = DEFAULT_SUFFIX,
    ) -> None:
        if worker_count < 1:
            raise ValueError(
                f"Invalid worker count {worker_count}: must be at least 1"
            )
        self.notes_dir = notes_dir
        self.submit = submit
        self.notify = notify
        self.worker_count = worker_count
        self.suffix = suffix

    def list_documents(self) -> list[Path]:
        return list_documents(self.notes_dir, self.suffix)

    async def load(self) -> LoadResult:
        """Parse and submit every document of the directory.

        Returns:
            The notes submitted and the documents that failed.
        """
        files = await run_sync(self.list_documents)
        if not files:
            logger.info("There are no notes in %s", self.notes_dir)
            self.notify(LoaderSignal.PARSING_NO_NOTES)
            return LoadResult()

        logger.info(
            "Loading %d notes from %s with %d workers",
            len(files),
            self.notes_dir,
            self.worker_count,
        )
        semaphore = asyncio.Semaphore(self.worker_count)
        batch = _Batch(len(files))
        last = len(files) - 1
        await gather_limited(
            [
                run_sync_limited(semaphore, self._work, path, i == last, batch)
                for i, path in enumerate(files)
            ]
        )
        return batch.result

    def load_blocking(self) -> LoadResult:
        """Synchronous wrapper around ``load()``."""
        return asyncio.run(self.load())

    def _work(self, path: Path, is_last: bool, batch: _Batch) -> None:
        try:
            logger.debug("Parsing %s", path.name)
            note = parse_note_file(path, self.suffix)
            self.submit(note)
            batch.add(note)
        except NoteSyncError as exc:
            logger.error("Failed to load %s: %s", path.name, exc)
            if batch.fail(path, exc):
                self.notify(LoaderSignal.PARSING_FAILED)
        finally:
            done = batch.finish_one()
            if is_last and not done:
                logger.debug("Final document parsed, waiting for other workers")
            if done:
                logger.info("Finished loading notes from %s", self.notes_dir)
                self.notify(LoaderSignal.PARSING_COMPLETE)
