"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-run summary.
- ``format_status`` -- engine state snapshot.
- ``format_history`` -- commit list for history commands.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.client import CommitSummary, FileChange
    from .models import SyncReport

from .models import SyncAction

_SECTIONS = (
    (SyncAction.PUSH, "Pushed"),
    (SyncAction.PULL, "Pulled"),
    (SyncAction.DELETE_REMOTE, "Deleted remotely"),
    (SyncAction.DELETE_LOCAL, "Deleted locally"),
)

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [f"Sync report ({report.kind.value})"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")
    lines.append(report.summary())
    lines.append("")

    for action, title in _SECTIONS:
        done = [r for r in report.results if r.action == action and r.success]
        if not done:
            continue
        lines.append(f"{title}:")
        for r in done:
            lines.append(f"  {r.local_path} <-> {r.remote_path}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            state = "resolved" if r.success else f"unresolved ({r.error})"
            lines.append(f"  {r.local_path}: {state}")
        lines.append("")

    errors = [r for r in report.errors if r.action != SyncAction.CONFLICT]
    if errors:
        lines.append("Errors:")
        for r in errors:
            lines.append(f"  {r.local_path} [{r.action.value}]: {r.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_status(status: dict) -> str:
    """Format ``SyncEngine.status()`` for display."""
    lines = [f"Tracked documents: {status['tracked']}"]
    last_sync = status.get("last_sync")
    if last_sync:
        when = datetime.fromtimestamp(last_sync, timezone.utc).isoformat()
        lines.append(f"Last sync: {when}")
    else:
        lines.append("Last sync: never")
    for key, title in (
        ("pending_push", "Pending push"),
        ("pending_delete", "Pending remote delete"),
        ("deferred_pull_for_active", "Deferred pulls"),
        ("conflicted", "Conflicted"),
    ):
        items = status.get(key) or []
        lines.append(f"{title}: {len(items)}")
        lines.extend(f"  {p}" for p in items)
    return "\n".join(lines)


def format_history(
    commits: list[CommitSummary],
    changes: dict[str, list[FileChange]] | None = None,
) -> str:
    """One line per commit, optionally followed by its changed documents."""
    if not commits:
        return "No history found."
    lines: list[str] = []
    for c in commits:
        title = c.message.splitlines()[0] if c.message else ""
        lines.append(f"{c.sha[:7]}  {c.date}  {c.author}  {title}".rstrip())
        for change in (changes or {}).get(c.sha, []):
            if change.previous_path:
                lines.append(
                    f"    {change.status}: {change.previous_path} -> {change.path}"
                )
            else:
                lines.append(f"    {change.status}: {change.path}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "local_path": r.local_path,
            "remote_path": r.remote_path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "kind": report.kind.value,
        "status": report.status,
        "error": report.error,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "pushed": report.pushed_count,
            "pulled": report.pulled_count,
            "deleted_locally": report.deleted_locally_count,
            "deleted_remotely": report.deleted_remotely_count,
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
        },
        "results": results_list,
    }
