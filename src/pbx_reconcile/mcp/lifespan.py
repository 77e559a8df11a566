"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config_loader import load_runtime_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import AriClient
from ..sync.service import ReconcileService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Merge CLI > env vars > YAML > defaults via load_runtime_config()
    - Create AriClient and validate the engine connection
    - Open the extension database and build the ReconcileService
    - Fail fast if the engine is unreachable or the database cannot be opened

    Args:
        config_overrides: Optional dict with config values from CLI
            (url, username, password, insecure, database_url, pjsip_config, backup_dir)

    Yields:
        Dict with 'service' and 'client' keys

    Raises:
        RuntimeError: If configuration is invalid or startup checks fail.
    """
    logger.info("MCP server starting...")
    _stderr_print("PBX Reconcile MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()
        config, sources = load_runtime_config(config_overrides)

        source_desc = ", ".join(sources) if sources else "defaults"
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("ARI URL: %s", config.ari_url)
        _stderr_print(f"  ARI URL: {config.ari_url}")
        _stderr_print(f"  PJSIP config: {config.pjsip_config}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure PBX_ARI_USERNAME and PBX_ARI_PASSWORD are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure PBX_ARI_USERNAME and PBX_ARI_PASSWORD are set."
        ) from e

    logger.info("Validating engine connection...")
    _stderr_print("  Validating engine connection...")
    try:
        client = AriClient(config)
        version = await run_sync(client.validate_connection)
        logger.info("Connected to Asterisk %s", version)
        _stderr_print(f"  Connected to Asterisk {version}")
    except Exception as e:
        logger.error("Failed to connect to engine: %s", e)
        _stderr_print("ERROR: Engine connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check PBX_ARI_URL, PBX_ARI_USERNAME, PBX_ARI_PASSWORD.")
        raise RuntimeError(
            f"Engine connection failed: {e}. Check PBX_ARI_URL, PBX_ARI_USERNAME, PBX_ARI_PASSWORD."
        ) from e

    try:
        service = ReconcileService.from_config(config, engine=client)
    except Exception as e:
        logger.error("Failed to open extension database: %s", e)
        _stderr_print("ERROR: Extension database unavailable.")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Extension database unavailable: {e}") from e

    init_semaphore(config.max_parallel_requests)
    _stderr_print(f"  Parallel operations: {config.max_parallel_requests}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"service": service, "client": client}

    logger.info("MCP server shutting down")
    _stderr_print("PBX Reconcile MCP Server shutting down.")
