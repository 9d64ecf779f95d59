"""Error taxonomy for note ingestion and synchronization.

All errors raised by notesync derive from ``NoteSyncError`` so callers can
catch the whole family at a round boundary.  Two of them also derive from
the builtin they specialise:

- ``MalformedTimestamp`` is a ``ValueError``.
- ``IOFailure`` is an ``OSError``.
"""

from __future__ import annotations


class NoteSyncError(Exception):
    """Base class for all notesync errors."""


class MalformedTimestamp(NoteSyncError, ValueError):
    """A date-time string could not be cleaned into RFC 3339 form."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Malformed timestamp: {raw!r}")
        self.raw = raw


class MalformedDocument(NoteSyncError):
    """A note document failed structural parsing."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Malformed note document {path}: {reason}")
        self.path = path
        self.reason = reason


class IOFailure(NoteSyncError, OSError):
    """A note document or the local store could not be read or written."""


class MissingContentFragment(NoteSyncError):
    """The raw scan found no ``<note-content>`` section in a document.

    Not fatal: the note proceeds with empty content.
    """

    def __init__(self, path: str) -> None:
        super().__init__(f"No note-content section found in {path}")
        self.path = path


class RoundAlreadyFinished(NoteSyncError):
    """A second terminal call was attempted for the same sync round."""
