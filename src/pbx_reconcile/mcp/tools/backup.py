"""MCP tool handlers for configuration file backups.

Defines five tools:

- ``backup_now`` -- back up one or more managed files (deduplicated).
- ``backup_list`` -- list backups of a file, newest first.
- ``backup_restore`` -- restore a backup over its file.
- ``backup_cleanup`` -- keep only the N newest backups.
- ``backup_status`` -- backup summary for every managed file.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import gather_limited, run_sync_limited
from ...sync.models import OperationReport
from ...sync.reporter import (
    backups_to_json,
    format_backup_status,
    format_backups,
    format_operation_report,
    report_to_json,
)
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...sync.service import ReconcileService

logger = logging.getLogger(__name__)

_PATH_PROPERTY = {
    "type": "string",
    "description": "Configuration file path. Defaults to the PJSIP config.",
}


def _report_result(report: OperationReport) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_operation_report(report))],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


def _merge_reports(operation: str, reports: list[OperationReport]) -> OperationReport:
    """Fold per-file reports into one, keeping input order."""
    if len(reports) == 1:
        return reports[0]
    return OperationReport(
        operation=operation,
        results=[r for report in reports for r in report.results],
        max_reported_errors=reports[0].max_reported_errors,
        started_at=min(r.started_at for r in reports),
        completed_at=max(r.completed_at or "" for r in reports) or None,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_backup_now(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    force = bool(args.get("force", False))
    paths = args.get("paths")
    if paths is None:
        report = await run_sync_limited(service.backup_now, None, force)
        return _report_result(report)

    if not isinstance(paths, list) or not paths:
        raise ValueError("paths must be a non-empty list of file paths")
    reports = await gather_limited(
        [run_sync_limited(service.backup_now, str(p), force) for p in paths]
    )
    return _report_result(_merge_reports("backup", reports))


async def _handle_backup_list(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    entries = await run_sync_limited(service.list_backups, args.get("path"))
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_backups(entries))],
        structuredContent={"backups": backups_to_json(entries)},
    )


async def _handle_backup_restore(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    backup_id = args.get("backup_id")
    if not backup_id:
        raise ValueError("backup_id is required")
    report = await run_sync_limited(service.restore_backup, backup_id, args.get("path"))
    return _report_result(report)


async def _handle_backup_cleanup(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    keep = args.get("keep")
    if keep is not None and (isinstance(keep, bool) or not isinstance(keep, int)):
        raise ValueError("keep must be an integer")
    report = await run_sync_limited(service.cleanup_backups, args.get("path"), keep)
    return _report_result(report)


async def _handle_backup_status(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    statuses = await run_sync_limited(service.backup_status)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_backup_status(statuses))],
        structuredContent={
            "files": [status.model_dump(mode="json") for status in statuses]
        },
    )


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


BACKUP_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="backup_now",
            description=(
                "Back up configuration files. A new copy is only made when "
                "the content differs from the newest backup unless force is set. "
                "Omit paths to back up every managed file."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "paths": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Files to back up",
                    },
                    "force": {
                        "type": "boolean",
                        "default": False,
                        "description": "Copy even when content is unchanged",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({"BACKUP_ADMIN"}),
        handler=_handle_backup_now,
    ),
    ToolSpec(
        tool=types.Tool(
            name="backup_list",
            description="List backups of a configuration file, newest first.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {"path": _PATH_PROPERTY},
                "required": [],
            },
        ),
        permissions=frozenset({"BACKUP_VIEW"}),
        handler=_handle_backup_list,
    ),
    ToolSpec(
        tool=types.Tool(
            name="backup_restore",
            description=(
                "Atomically replace a configuration file with one of its "
                "backups. The current content is backed up first. The engine "
                "is not reloaded."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "backup_id": {
                        "type": "string",
                        "description": "Backup file name as shown by backup_list",
                    },
                    "path": _PATH_PROPERTY,
                },
                "required": ["backup_id"],
            },
        ),
        permissions=frozenset({"BACKUP_ADMIN"}),
        handler=_handle_backup_restore,
    ),
    ToolSpec(
        tool=types.Tool(
            name="backup_cleanup",
            description=(
                "Delete all but the newest backups of a file (or of every "
                "managed file when path is omitted)."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Configuration file path. Omit for all managed files.",
                    },
                    "keep": {
                        "type": "integer",
                        "minimum": 0,
                        "description": "Backups to keep (defaults to configured retention)",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({"BACKUP_ADMIN"}),
        handler=_handle_backup_cleanup,
    ),
    ToolSpec(
        tool=types.Tool(
            name="backup_status",
            description="Show backup count and newest backup for every managed file.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        permissions=frozenset({"BACKUP_VIEW"}),
        handler=_handle_backup_status,
    ),
]
