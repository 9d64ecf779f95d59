"""File handler module: document discovery, encoding-aware reads, atomic writes.

Note documents are specified as UTF-8, but desktop exports occasionally
arrive in a legacy code page, so reads fall back to charset-normalizer
detection when strict UTF-8 decoding fails.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from notesync.errors import IOFailure

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".note"


# =============================================================================
# Discovery
# =============================================================================


def list_documents(directory: Path, suffix: str = DEFAULT_SUFFIX) -> list[Path]:
    """Return the files in *directory* whose name ends with *suffix*.

    Sorted by name so that the final entry of a batch is deterministic.

    Raises:
        IOFailure: If *directory* cannot be listed.
    """
    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise IOFailure(f"Cannot list {directory}: {exc}") from exc
    return sorted(
        (p for p in entries if p.is_file() and p.name.endswith(suffix)),
        key=lambda p: p.name,
    )


# =============================================================================
# Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file, detecting its encoding when it is not UTF-8.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).

    Raises:
        IOFailure: If the file cannot be read.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IOFailure(f"Cannot read {path}: {exc}") from exc
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8-sig"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        logger.warning("Encoding detection failed for %s, using utf-8", path)
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    logger.debug("Detected %s encoding for %s", result.encoding, path)
    return (str(result), result.encoding)


# =============================================================================
# Write
# =============================================================================


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* so readers never see partial data.

    Writes to a temp file in the same directory, then ``os.replace()``.
    Creates the parent directory when needed.

    Raises:
        IOFailure: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    except OSError as exc:
        raise IOFailure(f"Cannot write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except BaseException as exc:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        if isinstance(exc, OSError):
            raise IOFailure(f"Cannot write {path}: {exc}") from exc
        raise
