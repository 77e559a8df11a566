"""MCP Server for PBX configuration reconciliation using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents inspect drift between the extension database and the telephony
engine, run syncs, and manage configuration backups.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.service import ReconcileService
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("pbx-reconcile-mcp")

# Global service instance (initialized in lifespan)
_service: ReconcileService | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    service: ReconcileService, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test engine connectivity."""
    try:
        version = await run_sync(service.engine.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"PBX reconcile server connected. Asterisk version: {version}",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Engine connection failed: {e}. Check PBX_ARI_URL, PBX_ARI_USERNAME, PBX_ARI_PASSWORD.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test engine connectivity and return the Asterisk version",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> ReconcileService:
    """Get the global ReconcileService instance.

    Raises:
        RuntimeError: If service is not initialized
    """
    if _service is None:
        raise RuntimeError(
            "ReconcileService not initialized. Server lifespan not started."
        )
    return _service


def set_service(service: ReconcileService | None) -> None:
    """Set the global ReconcileService instance, or None to clear."""
    global _service
    _service = service


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """Return all registered (and permitted) tools from the ToolRegistry."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    """Build the ToolRegistry, filtered by *permissions_file* if given."""
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    engine connection via the lifespan manager, and serves JSON-RPC over
    stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (url, username, password, insecure, database_url, pjsip_config,
            backup_dir, log_file, permissions_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    permissions_file = overrides.pop("permissions_file", None)

    # Must run before stdio_server so nothing reaches stdout during negotiation
    setup_logging(mode="mcp", debug=bool(overrides.get("debug")), log_file=log_file)

    set_registry(build_registry(permissions_file))

    # set_service() is called here rather than in the lifespan so that
    # running this file as __main__ updates the same module globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="pbx-reconcile-mcp",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_service(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="PBX Reconcile MCP Server - reconcile extension records with a live Asterisk engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .pbx_reconcile/config.yml)
  pbx-reconcile-mcp

  # Override engine and database
  pbx-reconcile-mcp --url http://pbx.example.com:8088 --database-url mysql+pymysql://pbx@db/pbx

  # Read-only deployment
  pbx-reconcile-mcp --permissions-file /etc/pbx-reconcile/read-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--url",
        help="Override ARI URL (takes precedence over PBX_ARI_URL and config files)",
    )
    parser.add_argument(
        "--username",
        help="Override ARI username (takes precedence over PBX_ARI_USERNAME and config files)",
    )
    parser.add_argument(
        "--password",
        help="Override ARI password (takes precedence over PBX_ARI_PASSWORD and config files)"
        " (visible in process list -- prefer PBX_ARI_PASSWORD env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--database-url", help="SQLAlchemy URL of the extension database")
    parser.add_argument("--pjsip-config", help="Path of the PJSIP endpoint config file")
    parser.add_argument("--backup-dir", help="Directory for configuration backups")
    parser.add_argument(
        "--log-file",
        default="/tmp/pbx-reconcile.log",
        help="Log file path (default: /tmp/pbx-reconcile.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (SYNC_VIEW, SYNC_ADMIN, BACKUP_VIEW, "
        "BACKUP_ADMIN), # for comments. If not specified, all tools are available.",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pbx-reconcile-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    for key in (
        "url",
        "username",
        "password",
        "database_url",
        "pjsip_config",
        "backup_dir",
        "log_file",
        "permissions_file",
    ):
        value = getattr(args, key)
        if value:
            config_overrides[key] = value
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True

    # Log config overrides to stderr (before stdio transport starts)
    if config_overrides:
        override_keys = [k for k in config_overrides if k != "password"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
