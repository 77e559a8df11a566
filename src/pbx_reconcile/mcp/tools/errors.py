"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...errors import ReconcileError

_CORRECTIVE_ACTIONS: dict[str, str] = {
    "parse_error": "Fix the malformed line in the configuration file, then retry.",
    "write_error": "Check permissions and free space of the config and backup directories.",
    "engine_unreachable": "Check PBX_ARI_URL and that the engine's HTTP/ARI interface is running, then retry.",
    "reload_error": "The configuration may be written but not applied. Check the engine log, then run sync_status.",
    "repository_error": "Check PBX_DATABASE_URL and that the database is reachable.",
    "not_found": "Use sync_status or backup_list to find valid identifiers.",
    "conflict": "State changed underneath the operation. Run sync_status again and retry.",
}


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, conflict, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Unknown backup id: x", "Use backup_list to find valid identifiers.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def corrective_action_for(error_type: str) -> str:
    return _CORRECTIVE_ACTIONS.get(error_type, "Retry later or check the server log.")


def translate_reconcile_error(error: ReconcileError) -> types.CallToolResult:
    """Translate an engine error into a structured error response."""
    return build_error_response(
        error.error_type, str(error), corrective_action_for(error.error_type)
    )
