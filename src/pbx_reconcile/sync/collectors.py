"""Read-only collection of intended and actual extension state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import NotFoundError, ReconcileError, RepositoryError
from .mapper import live_state_from_detail
from .models import ExtensionRecord, LiveEndpointState, identifier_sort_key

if TYPE_CHECKING:
    from ..core.client import EngineControl
    from ..repository.extensions import RecordRepository

logger = logging.getLogger(__name__)


class LiveStateCollector:
    """Snapshot of the endpoints currently loaded in the engine.

    Args:
        engine: Engine control client.
    """

    def __init__(self, engine: EngineControl) -> None:
        self.engine = engine

    def collect_all(self) -> dict[str, LiveEndpointState]:
        """Return identifier -> live state for every loaded endpoint.

        An engine with no endpoints yields an empty mapping.

        Raises:
            EngineUnreachableError: If the control interface cannot be reached.
        """
        entries = self.engine.list_live_endpoints()
        states: dict[str, LiveEndpointState] = {}
        for entry in sorted(entries, key=lambda e: identifier_sort_key(str(e["id"]))):
            identifier = str(entry["id"])
            try:
                detail = self.engine.get_endpoint_detail(identifier)
            except NotFoundError:
                # Unloaded between list and detail
                logger.debug("Endpoint %s vanished during collection", identifier)
                continue
            states[identifier] = live_state_from_detail(entry, detail)
        logger.debug("Collected %d live endpoints", len(states))
        return states


class RecordStateCollector:
    """Snapshot of the intended extension records.

    Args:
        repository: Record repository.
    """

    def __init__(self, repository: RecordRepository) -> None:
        self.repository = repository

    def collect_all(self) -> dict[str, ExtensionRecord]:
        """Return identifier -> record for every extension in the database.

        Raises:
            RepositoryError: On storage access failure.
        """
        try:
            records = self.repository.list_records()
        except ReconcileError:
            raise
        except Exception as e:
            raise RepositoryError(f"Cannot read extension records: {e}") from e
        result = {
            r.identifier: r
            for r in sorted(records, key=lambda r: identifier_sort_key(r.identifier))
        }
        logger.debug("Collected %d extension records", len(result))
        return result
