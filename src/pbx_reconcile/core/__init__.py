"""Engine client and concurrency helpers shared by the CLI and MCP server."""

from .async_utils import run_sync, run_sync_limited
from .client import AriClient, EngineControl
from .locks import KeyedLock

__all__ = ["AriClient", "EngineControl", "KeyedLock", "run_sync", "run_sync_limited"]
