"""MCP tool handlers for reconciliation and sync.

Defines five tools:

- ``sync_status`` -- classify every extension (read-only).
- ``sync_record_to_live`` -- write records into the engine config and reload.
- ``sync_live_to_record`` -- save live endpoint state into the records.
- ``sync_auto`` -- resolve one-sided drift, report mismatches.
- ``sync_remove_from_live`` -- delete extensions from the engine config.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync_limited
from ...sync.reporter import (
    format_operation_report,
    format_sync_status,
    report_to_json,
    status_to_json,
)
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...sync.models import OperationReport
    from ...sync.service import ReconcileService

logger = logging.getLogger(__name__)

_IDENTIFIER_PROPERTY = {
    "type": "string",
    "description": "Extension number. Omit to process every extension.",
}


def _report_result(report: OperationReport) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_operation_report(report))],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync_status(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    result = await run_sync_limited(service.get_sync_status)
    text = format_sync_status(result, show_matched=bool(args.get("show_matched", False)))
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=status_to_json(result),
    )


async def _handle_record_to_live(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    report = await run_sync_limited(service.sync_record_to_live, args.get("identifier"))
    return _report_result(report)


async def _handle_live_to_record(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    report = await run_sync_limited(service.sync_live_to_record, args.get("identifier"))
    return _report_result(report)


async def _handle_auto(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    report = await run_sync_limited(service.sync_auto)
    return _report_result(report)


async def _handle_remove_from_live(
    service: ReconcileService, args: dict[str, Any]
) -> types.CallToolResult:
    identifiers = args.get("identifiers") or []
    if not isinstance(identifiers, list) or not identifiers:
        raise ValueError("identifiers must be a non-empty list of extension numbers")
    report = await run_sync_limited(
        service.remove_from_live, [str(i) for i in identifiers]
    )
    return _report_result(report)


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_status",
            description=(
                "Compare database extension records with the engine's live "
                "endpoints. Each extension is reported as in sync, database "
                "only, engine only, or differing (with per-field values)."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "show_matched": {
                        "type": "boolean",
                        "default": False,
                        "description": "List in-sync extensions individually",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({"SYNC_VIEW"}),
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_record_to_live",
            description=(
                "Write database extension records into the engine's PJSIP "
                "configuration (backing the file up first) and reload the "
                "engine once."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"identifier": _IDENTIFIER_PROPERTY},
                "required": [],
            },
        ),
        permissions=frozenset({"SYNC_ADMIN"}),
        handler=_handle_record_to_live,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_live_to_record",
            description=(
                "Save the engine's live endpoint settings into the database "
                "records, creating records for endpoints that have none."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"identifier": _IDENTIFIER_PROPERTY},
                "required": [],
            },
        ),
        permissions=frozenset({"SYNC_ADMIN"}),
        handler=_handle_live_to_record,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_auto",
            description=(
                "Push database-only extensions to the engine, pull "
                "engine-only endpoints into the database, and report "
                "differing extensions as conflicts for a human decision."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        permissions=frozenset({"SYNC_ADMIN"}),
        handler=_handle_auto,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_remove_from_live",
            description=(
                "Delete extensions' endpoint, auth and aor sections from the "
                "engine configuration and reload. Database records are kept."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "identifiers": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Extension numbers to remove",
                    },
                },
                "required": ["identifiers"],
            },
        ),
        permissions=frozenset({"SYNC_ADMIN"}),
        handler=_handle_remove_from_live,
    ),
]
