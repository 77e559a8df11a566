"""Report formatting functions.

Provides human-readable and machine-readable output for reconciliation,
sync and backup operations:

- ``format_sync_status`` -- per-extension classification summary.
- ``format_operation_report`` -- "N succeeded, M failed" plus details.
- ``format_backups`` / ``format_backup_status`` -- backup listings.
- ``status_to_json`` / ``report_to_json`` / ``backups_to_json`` --
  structured dicts for MCP ``structuredContent`` and ``--json`` output.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..backup.store import BackupEntry, BackupStatus
    from .models import OperationReport, ReconciliationResult

_KIND_LABELS = {
    "matched": "In sync",
    "record_only": "Only in database",
    "live_only": "Only in engine",
    "mismatched": "Differs",
}

# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_sync_status(result: ReconciliationResult, show_matched: bool = False) -> str:
    """Format a reconciliation result as text.

    Matched extensions are summarised by count unless *show_matched*.
    """
    counts = result.counts
    lines = [
        f"Extensions: {result.total} "
        f"({counts['matched']} in sync, {counts['record_only']} database only, "
        f"{counts['live_only']} engine only, {counts['mismatched']} differ)",
        f"Reconciled: {result.reconciled_at}",
        "",
    ]

    for kind in ("mismatched", "record_only", "live_only", "matched"):
        if kind == "matched" and not show_matched:
            continue
        identifiers = result.identifiers(kind)
        if not identifiers:
            continue
        lines.append(f"{_KIND_LABELS[kind]}:")
        for identifier in identifiers:
            status = result.statuses[identifier]
            if status.kind == "mismatched":
                lines.append(f"  {identifier}")
                for field, diff in status.fields.items():
                    lines.append(
                        f"    {field}: database={diff.record_value!r} "
                        f"engine={diff.live_value!r}"
                    )
            elif status.kind == "record_only" and not status.enabled:
                lines.append(f"  {identifier} (disabled)")
            else:
                lines.append(f"  {identifier}")
        lines.append("")

    if result.total == 0:
        lines.append("No extensions found.")

    return "\n".join(lines).rstrip()


def format_operation_report(report: OperationReport) -> str:
    """Format an operation report with its first N errors."""
    lines = [report.summary()]

    changed = [
        r for r in report.results if r.success and r.action not in (None, "unchanged")
    ]
    if changed:
        lines.append("")
        lines.append("Changed:")
        for r in changed:
            lines.append(f"  {r.identifier}: {r.action}")

    if report.errors:
        lines.append("")
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.identifier} [{r.error_type}]: {r.error}")
        hidden = report.failed - len(report.errors)
        if hidden > 0:
            lines.append(f"  ... and {hidden} more")

    if report.reload is not None and not report.reload.success:
        lines.append("")
        lines.append(
            "Configuration was written but the engine did not apply it: "
            f"{report.reload.message}"
        )

    return "\n".join(lines)


def format_backups(entries: Sequence[BackupEntry]) -> str:
    if not entries:
        return "No backups found."
    lines = [f"{len(entries)} backup(s), newest first:"]
    for entry in entries:
        lines.append(
            f"  {entry.backup_id}  {entry.created_at:%Y-%m-%d %H:%M:%S}  "
            f"{entry.content_hash[:12]}"
        )
    return "\n".join(lines)


def format_backup_status(statuses: Sequence[BackupStatus]) -> str:
    lines = ["Backup status:"]
    for status in statuses:
        state = "" if status.exists else " (missing)"
        newest = (
            f"{status.latest.created_at:%Y-%m-%d %H:%M:%S}" if status.latest else "never"
        )
        lines.append(
            f"  {status.path}{state}: {status.backup_count} backup(s), newest {newest}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def status_to_json(result: ReconciliationResult) -> dict:
    """Convert a reconciliation result to a structured dict.

    Fingerprints are internal and left out.
    """
    return {
        "reconciled_at": result.reconciled_at,
        "counts": {**result.counts, "total": result.total},
        "statuses": [
            status.model_dump(mode="json") for status in result.statuses.values()
        ],
    }


def report_to_json(report: OperationReport) -> dict:
    """Convert an operation report to a structured dict."""
    return {
        "operation": report.operation,
        "success": report.success,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "cancelled": report.cancelled,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "errors": [r.model_dump(mode="json") for r in report.errors],
        "reload": report.reload.model_dump(mode="json") if report.reload else None,
        "results": [r.model_dump(mode="json", exclude_none=True) for r in report.results],
    }


def backups_to_json(entries: Sequence[BackupEntry]) -> list[dict]:
    return [entry.model_dump(mode="json") for entry in entries]
