"""MCP tool handlers for reconciliation and backups.

This package wraps ``ReconcileService`` with async handlers, text and
structured output, and permission-filtered dispatch.
"""

from .backup import BACKUP_SPECS
from .errors import build_error_response
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .sync import SYNC_SPECS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + BACKUP_SPECS

__all__ = [
    "build_error_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Tool lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "BACKUP_SPECS",
]
