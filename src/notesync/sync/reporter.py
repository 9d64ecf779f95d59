"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync rounds:

- ``format_sync_report`` -- full post-round summary.
- ``format_conflict_diff`` -- unified diff for interactive conflict review.
- ``report_to_json`` -- structured dict for logs and tooling.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from notesync.note import format_timestamp

if TYPE_CHECKING:
    from .models import ConflictHandle, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged notes are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Sync report" if report.push_round else "Import report"
    if not report.finished:
        header += " (INCOMPLETE)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Synced {len(report.results)} notes: "
        f"{len(report.pushed)} pushed, {len(report.pulled)} pulled, "
        f"{len(report.inserted)} new, {len(report.deleted)} deleted, "
        f"{len(report.conflicts)} conflicts, {len(report.errors)} errors"
    )
    lines.append("")

    sections = [
        ("Pushed to server:", report.pushed),
        ("Pulled from server:", report.pulled),
        ("New notes:", report.inserted),
        ("Deleted on server:", report.deleted),
    ]
    for title, results in sections:
        if not results:
            continue
        lines.append(title)
        for r in results:
            lines.append(f"  {r.title} ({r.guid})")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            desc = r.error or "both sides changed"
            lines.append(f"  {r.title} ({r.guid}): {desc}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.title} ({r.guid}): {r.error}")
        lines.append("")

    unchanged = len(report.refreshed) + len(report.skipped)
    if unchanged > 0:
        lines.append(f"Unchanged: {unchanged} notes")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(handle: ConflictHandle) -> str:
    """Format a single conflict for interactive review.

    Shows both change dates and a unified diff between the local and the
    remote note content.

    Args:
        handle: The escalated conflict.

    Returns:
        Multi-line formatted string.
    """
    local, remote = handle.local, handle.remote
    newer = "local" if handle.diff_direction > 0 else "remote"
    lines: list[str] = [
        f"Conflict: {remote.title} ({remote.guid})",
        f"  local changed:  {format_timestamp(local.last_change_date)}",
        f"  remote changed: {format_timestamp(remote.last_change_date)}",
        f"  newer copy: {newer}",
        "",
    ]
    if local.title != remote.title:
        lines.append(f"Title: '{local.title}' -> '{remote.title}'")
        lines.append("")

    diff = difflib.unified_diff(
        local.xml_content.splitlines(keepends=True),
        remote.xml_content.splitlines(keepends=True),
        fromfile="local",
        tofile="remote",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")

    if handle.is_last_conflict:
        lines.append("")
        lines.append("This is the last conflict of the round.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with round info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "guid": str(r.guid),
            "title": r.title,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "push_round": report.push_round,
        "finished": report.finished,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "inserted": len(report.inserted),
            "pushed": len(report.pushed),
            "pulled": len(report.pulled),
            "deleted": len(report.deleted),
            "unchanged": len(report.refreshed),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
        },
        "results": results_list,
    }
