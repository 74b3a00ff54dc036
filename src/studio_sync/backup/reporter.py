"""Backup report formatting functions.

Provides human-readable and machine-readable output for backup
operations:

- ``format_timestamp_ms`` -- epoch milliseconds as a UTC date string.
- ``format_check_result`` -- outcome of one monitor check.
- ``format_divergence`` -- a pending divergence plus its diff summary.
- ``format_backup_status`` -- uploader status line.
- ``format_backup_list`` -- daily snapshots stored on the server.
- ``divergence_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .models import MonitorState

if TYPE_CHECKING:
    from .models import (
        BackupStatus,
        CheckResult,
        DiffSummary,
        Divergence,
        ServerBackup,
    )


def format_timestamp_ms(value: int | None) -> str:
    """Format epoch milliseconds as ``YYYY-MM-DD HH:MM:SS UTC``."""
    if not value:
        return "never"
    dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


# ------------------------------------------------------------------
# Monitor
# ------------------------------------------------------------------


def format_check_result(result: CheckResult) -> str:
    """Format a monitor check as a short multi-line summary."""
    if result.skipped:
        match result.state:
            case MonitorState.CHECKING:
                return "Backup check skipped: another check is running."
            case MonitorState.DIVERGED:
                return (
                    "Backup check skipped: a newer remote backup is awaiting "
                    "a decision. Use conflict_status to review it."
                )
            case _:
                return (
                    "Backup check skipped: automatic backup is disabled. "
                    "Use force=true to check anyway."
                )

    lines: list[str] = []
    match result.state:
        case MonitorState.UP_TO_DATE:
            lines.append("Local state is up to date.")
        case MonitorState.DIVERGED:
            lines.append("Remote backup is newer than local state.")
        case MonitorState.CHECK_FAILED:
            lines.append(f"Backup check failed: {result.error}")
            lines.append("The check will be retried on the next schedule.")
        case _:
            lines.append(f"Monitor state: {result.state.value}")

    if result.local_timestamp is not None:
        lines.append(f"Local latest change:  {format_timestamp_ms(result.local_timestamp)}")
    if result.remote_timestamp is not None:
        lines.append(f"Remote content:       {format_timestamp_ms(result.remote_timestamp)}")
    if result.backup_timestamp is not None:
        lines.append(f"Remote backup written: {format_timestamp_ms(result.backup_timestamp)}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------


def format_divergence(
    divergence: Divergence, summary: DiffSummary | None = None
) -> str:
    """Format a pending divergence for human review."""
    lines = [
        "A remote backup is newer than the local state.",
        f"Remote content:      {format_timestamp_ms(divergence.remote_timestamp)}",
        f"Local latest change: {format_timestamp_ms(divergence.local_timestamp)}",
        "",
    ]

    if summary is not None:
        lines.append(
            f"Books:     local {summary.local_book_count}, "
            f"remote {summary.remote_book_count}"
        )
        lines.append(
            f"Documents: local {summary.local_doc_count}, "
            f"remote {summary.remote_doc_count}"
        )
        sections = [
            ("Only in local", summary.books_only_in_local),
            ("Only in remote", summary.books_only_in_remote),
            ("Newer in local", summary.newer_in_local),
            ("Newer in remote", summary.newer_in_remote),
        ]
        for label, books in sections:
            if books:
                lines.append(f"{label}:")
                for book in books:
                    lines.append(f"  {book.title} ({book.id})")
        lines.append("")

    lines.append(
        "Resolve with conflict_resolve(decision='adopt_remote') or "
        "conflict_resolve(decision='keep_local')."
    )
    return "\n".join(lines)


def divergence_to_json(
    divergence: Divergence, summary: DiffSummary | None = None
) -> dict[str, Any]:
    """Structured form of a divergence (the snapshot itself is omitted)."""
    data: dict[str, Any] = {
        "pending": True,
        "remote_timestamp": divergence.remote_timestamp,
        "local_timestamp": divergence.local_timestamp,
        "backup_timestamp": divergence.backup_timestamp,
    }
    if summary is not None:
        data["summary"] = summary.model_dump()
    return data


# ------------------------------------------------------------------
# Uploads
# ------------------------------------------------------------------


def format_backup_status(status: BackupStatus) -> str:
    return (
        f"Backup status: {status.status.value}\n"
        f"Last backup: {format_timestamp_ms(status.last_backup_timestamp)}"
    )


def format_backup_list(backups: list[ServerBackup]) -> str:
    """Format daily snapshots, newest first."""
    if not backups:
        return "No daily backups on the server."
    lines = [f"{len(backups)} daily backup(s):"]
    for backup in backups:
        lines.append(f"  {backup.id}  {backup.created_at}  {backup.size} bytes")
    return "\n".join(lines)
