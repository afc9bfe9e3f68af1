"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- summary of one collection's run.
- ``format_sync_reports`` -- summaries of several runs plus a totals line.
- ``format_sync_status`` -- last persisted outcome per collection.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport

from .models import SyncStatus

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format one collection's sync report as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync of '{report.collection.value}': {report.status.value.upper()}"
    if report.attempts > 1:
        header += f" after {report.attempts} attempts"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    stats = report.stats
    lines.append(
        f"Merged: {stats.adopted} adopted, {stats.retained} local only, "
        f"{stats.unchanged} unchanged, {stats.local_wins} local wins, "
        f"{stats.remote_wins} remote wins, "
        f"{stats.completion_wins} completions kept"
    )
    if stats.normalized:
        lines.append(f"Normalized: {stats.normalized} records")
    if stats.dropped:
        lines.append(f"Dropped: {stats.dropped} invalid records")
    lines.append(
        "Local store: " + ("updated" if report.local_changed else "unchanged")
    )
    lines.append("")

    if report.written:
        lines.append("Written:")
        for p in report.written:
            tag = f" ({p.version_tag[:7]})" if p.version_tag else ""
            lines.append(f"  {p.path}: {p.record_count} records{tag}")
        lines.append("")

    if report.failed_partitions:
        lines.append("Not written:")
        for p in report.failed_partitions:
            lines.append(f"  {p.path}: {p.error}")
        lines.append("")

    if report.error:
        stage = report.failed_stage.value if report.failed_stage else "start"
        lines.append(f"Error during {stage}: [{report.error_type}] {report.error}")
        lines.append("")

    if report.is_noop:
        lines.append("Already in sync.")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_sync_reports(reports: list[SyncReport]) -> str:
    """Format several reports, followed by a one-line summary."""
    if not reports:
        return "Nothing to sync."
    sections = [format_sync_report(r) for r in reports]
    ok = sum(1 for r in reports if r.status == SyncStatus.OK)
    partial = sum(1 for r in reports if r.status == SyncStatus.PARTIAL)
    failed = sum(1 for r in reports if r.status == SyncStatus.FAILED)
    sections.append(
        f"Synced {len(reports)} collections: "
        f"{ok} ok, {partial} partial, {failed} failed"
    )
    return "\n\n".join(sections)


def format_sync_status(states: dict[str, dict]) -> str:
    """Format persisted sync state files as a status table.

    Args:
        states: Mapping of collection name to its loaded state dict.
    """
    lines: list[str] = []
    for name, state in states.items():
        last = state.get("last_sync") or "never"
        status = state.get("status") or "-"
        partitions = len(state.get("partitions", {}))
        line = f"{name}: last sync {last}, status {status}, {partitions} partitions"
        if state.get("error"):
            line += f" (error: {state['error']})"
        lines.append(line)
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    partitions = []
    for p in report.partitions:
        entry: dict = {
            "path": p.path,
            "written": p.written,
            "record_count": p.record_count,
        }
        if p.version_tag:
            entry["version_tag"] = p.version_tag
        if p.error:
            entry["error"] = p.error
        partitions.append(entry)

    result: dict = {
        "collection": report.collection.value,
        "status": report.status.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "attempts": report.attempts,
        "local_changed": report.local_changed,
        "stats": report.stats.model_dump(),
        "partitions": partitions,
    }
    if report.error:
        result["error"] = {
            "type": report.error_type,
            "message": report.error,
            "stage": report.failed_stage.value if report.failed_stage else None,
        }
    return result
