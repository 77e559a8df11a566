"""Serialised engine reloads."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from ..errors import EngineUnreachableError, ReloadError
from .models import ReloadResult

if TYPE_CHECKING:
    from ..core.client import EngineControl

logger = logging.getLogger(__name__)

# Overlapping reloads against one engine instance are undefined
_RELOAD_LOCK = threading.Lock()


class ReloadController:
    """Issue "apply configuration" to the engine, one at a time.

    The lock is process-wide, so controllers built around different
    client instances still never reload concurrently.
    """

    def __init__(self, engine: EngineControl, lock: threading.Lock | None = None) -> None:
        self.engine = engine
        self._lock = lock or _RELOAD_LOCK

    def reload(self) -> ReloadResult:
        """Reload the engine configuration.

        Raises:
            ReloadError: The engine reported failure, or could not be
                reached; ``raw_error`` carries the engine's text.
        """
        with self._lock:
            logger.info("Reloading engine configuration")
            try:
                message = self.engine.reload()
            except ReloadError:
                logger.error("Engine reload failed", exc_info=True)
                raise
            except EngineUnreachableError as e:
                raise ReloadError("Engine unreachable during reload", raw_error=str(e)) from e
        logger.info("Engine reload complete")
        return ReloadResult(success=True, message=message or "reloaded")

    def try_reload(self) -> ReloadResult:
        """Reload, reporting failure as a result instead of raising."""
        try:
            return self.reload()
        except ReloadError as e:
            return ReloadResult(
                success=False,
                message=str(e),
                raw_error=e.raw_error,
                error_type=e.error_type,
            )
