"""The ``Note`` value type and its timestamp handling.

A note is identified by its ``guid`` alone; everything else may change.
Timestamps are always aware UTC ``datetime`` values truncated to
millisecond precision, because the desktop note format writes up to seven
fractional digits that other sources cannot reproduce.

Only ``change_content()`` and ``mark_deleted()`` advance
``last_change_date``.  Re-hydrating a note from storage must go through
``set_content_preserving_timestamp()`` so that the reconciliation engine
never mistakes a reload for an edit.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID
from xml.sax.saxutils import escape, unescape

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notesync.errors import MalformedTimestamp

logger = logging.getLogger(__name__)

DELETED_TAG = "system:deleted"
TEMPLATE_TAG = "system:template"

# Strips sub-millisecond digits, e.g. 2010-01-23T12:07:38.7743020-05:00
# becomes 2010-01-23T12:07:38.774-05:00.
_DATE_CLEANER = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3})"
    r"\d+"
    r"(Z|[-+]\d{2}:\d{2})?"
)

_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"
    r"(?:\.\d{1,3})?"
    r"(?:Z|[-+]\d{2}:\d{2})?"
)


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def normalize_utc(value: datetime) -> datetime:
    """Return *value* in UTC, truncated to milliseconds.

    Naive datetimes are taken to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def now_utc() -> datetime:
    return normalize_utc(datetime.now(timezone.utc))


def clean_timestamp(raw: str) -> str:
    """Drop fractional-second digits beyond the third."""
    raw = raw.strip()
    m = _DATE_CLEANER.fullmatch(raw)
    if m:
        cleaned = m.group(1) + (m.group(2) or "")
        logger.debug("Cleaned sub-milliseconds: %s -> %s", raw, cleaned)
        return cleaned
    return raw


def parse_timestamp(raw: str) -> datetime:
    """Clean, parse and normalize an RFC 3339 date-time string.

    Raises:
        MalformedTimestamp: If the cleaned string is not a date-time.
    """
    cleaned = clean_timestamp(raw)
    if not _RFC3339.fullmatch(cleaned):
        raise MalformedTimestamp(raw)
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedTimestamp(raw) from exc
    return normalize_utc(parsed)


def format_timestamp(value: datetime) -> str:
    """Render *value* as ``YYYY-MM-DDThh:mm:ss.SSS+00:00``."""
    return normalize_utc(value).isoformat(timespec="milliseconds")


def compare_dates(a: datetime | None, b: datetime | None) -> int:
    """Three-way compare; ``None`` sorts before every instant."""
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


# ---------------------------------------------------------------------------
# Content helpers
# ---------------------------------------------------------------------------


def strip_title_from_content(xml_content: str, title: str) -> str:
    """Remove the title line that legacy documents repeat in the body.

    The title is matched as an escaped literal (never as markup) and must
    be followed by a blank line.  Only the first occurrence is removed; an
    opening ``<note-content ...>`` tag in front of it is kept.
    """
    if not title:
        return xml_content
    pattern = re.compile(
        r"(<note-content[^>]*>)?\s*" + re.escape(escape(title)) + r"\n\n"
    )
    m = pattern.match(xml_content)
    if not m:
        return xml_content
    logger.debug("Stripped the title from note-content")
    return (m.group(1) or "") + xml_content[m.end() :]


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class NoteLifecycle(str, Enum):
    """Lifecycle of a note, replacing the ``system:*`` sentinel tags."""

    ACTIVE = "active"
    DELETED = "deleted"
    TEMPLATE = "template"


class Note(BaseModel):
    """A single note, the unit of synchronization.

    Attributes:
        guid: Cross-store identity.  Cannot be reassigned.
        title: Human-readable title.
        xml_content: Body markup, kept verbatim.
        last_change_date: Aware UTC datetime, millisecond precision.
        last_sync_revision: Legacy revision counter, unused by the engine.
        tags: User tags (system sentinels are folded into ``lifecycle``).
        lifecycle: Active, tombstoned or template.
        local_handle: Opaque row handle owned by the local store.
        file_name: Source document path when ingested from disk.
    """

    model_config = ConfigDict(validate_assignment=True)

    guid: UUID = Field(frozen=True)
    title: str = ""
    xml_content: str = ""
    last_change_date: datetime = Field(default_factory=now_utc)
    last_sync_revision: int | None = None
    tags: frozenset[str] = frozenset()
    lifecycle: NoteLifecycle = NoteLifecycle.ACTIVE
    local_handle: str | None = None
    file_name: str | None = None

    @field_validator("last_change_date", mode="before")
    @classmethod
    def _coerce_change_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_timestamp(value)
        if isinstance(value, datetime):
            return normalize_utc(value)
        return value

    # ------------------------------------------------------------------
    # Timestamp and content operations
    # ------------------------------------------------------------------

    def set_change_date(self, raw: str) -> None:
        """Parse *raw* (see ``parse_timestamp``) into ``last_change_date``."""
        self.last_change_date = parse_timestamp(raw)

    def set_content_preserving_timestamp(self, body: str) -> None:
        """Replace the body, leaving ``last_change_date`` untouched."""
        self.xml_content = body

    def change_content(self, body: str) -> None:
        """Replace the body and set ``last_change_date`` to now."""
        self.xml_content = body
        self.last_change_date = now_utc()

    def mark_deleted(self) -> None:
        """Tombstone the note so the next sync round deletes it remotely."""
        self.lifecycle = NoteLifecycle.DELETED
        self.last_change_date = now_utc()

    @property
    def is_deleted(self) -> bool:
        return self.lifecycle is NoteLifecycle.DELETED

    @property
    def is_template(self) -> bool:
        return self.lifecycle is NoteLifecycle.TEMPLATE

    # ------------------------------------------------------------------
    # Tag boundary
    # ------------------------------------------------------------------

    @staticmethod
    def split_tags(
        raw_tags: list[str] | set[str] | frozenset[str],
    ) -> tuple[frozenset[str], NoteLifecycle]:
        """Separate sentinel tags from user tags.

        Exact matches only; ``system:deleted`` wins over ``system:template``.
        """
        tags = {t.strip() for t in raw_tags if t and t.strip()}
        if DELETED_TAG in tags:
            lifecycle = NoteLifecycle.DELETED
        elif TEMPLATE_TAG in tags:
            lifecycle = NoteLifecycle.TEMPLATE
        else:
            lifecycle = NoteLifecycle.ACTIVE
        return frozenset(tags - {DELETED_TAG, TEMPLATE_TAG}), lifecycle

    @classmethod
    def from_tags(cls, guid: UUID | str, raw_tags: list[str], **fields: Any) -> Note:
        """Build a note whose lifecycle is derived from document tags."""
        tags, lifecycle = cls.split_tags(raw_tags)
        return cls(guid=guid, tags=tags, lifecycle=lifecycle, **fields)

    @property
    def all_tags(self) -> list[str]:
        """User tags plus the sentinel tag for the lifecycle, sorted."""
        tags = set(self.tags)
        if self.lifecycle is NoteLifecycle.DELETED:
            tags.add(DELETED_TAG)
        elif self.lifecycle is NoteLifecycle.TEMPLATE:
            tags.add(TEMPLATE_TAG)
        return sorted(tags)

    # ------------------------------------------------------------------
    # Wire format
    # ------------------------------------------------------------------

    def to_json(self) -> dict:
        """Return the remote service's note dictionary."""
        return {
            "guid": str(self.guid),
            "title": self.title,
            "note-content": self.xml_content,
            "last-change-date": format_timestamp(self.last_change_date),
            "last-sync-revision": (
                -1
                if self.last_sync_revision is None
                else self.last_sync_revision
            ),
            "tags": self.all_tags,
        }

    def to_json_without_content(self) -> dict:
        data = self.to_json()
        del data["note-content"]
        del data["last-sync-revision"]
        return data

    @classmethod
    def from_json(cls, data: dict) -> Note:
        """Build a note from the remote service's dictionary.

        Raises:
            MalformedTimestamp: If ``last-change-date`` is unparseable.
        """
        revision = data.get("last-sync-revision", -1)
        return cls.from_tags(
            data["guid"],
            list(data.get("tags", [])),
            title=unescape(data.get("title", "")),
            xml_content=data.get("note-content", ""),
            last_change_date=parse_timestamp(
                data.get("last-change-date", "")
            ),
            last_sync_revision=None if revision < 0 else revision,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        # Content is deliberately not compared.
        if not isinstance(other, Note):
            return NotImplemented
        return (
            self.guid == other.guid
            and self.last_change_date == other.last_change_date
            and self.title == other.title
        )

    def __hash__(self) -> int:
        return hash(self.guid)

    def __str__(self) -> str:
        return f"Note: {self.title} ({format_timestamp(self.last_change_date)})"
