"""Apply reconciliation outcomes in either direction.

Record -> live: the PJSIP config file is loaded once per batch, each
identifier's sections are patched into the document, the document is
written once (backup first, atomic replace) and the engine is reloaded
once if anything changed.

Live -> record: each live endpoint is mapped onto a record update and
saved through the repository.

Error handling is per identifier: one failure never aborts the batch and
every outcome is reported. A cancel event stops new work; the results
accumulated so far are returned.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..backup.store import lock_key
from ..confstore.document import ConfigDocument
from ..core.locks import KeyedLock
from ..errors import (
    ConflictError,
    NotFoundError,
    ParseError,
    ReconcileError,
    RepositoryError,
)
from .mapper import apply_record, remove_extension, record_from_live, secret_from_document
from .models import (
    ExtensionRecord,
    ItemResult,
    OperationReport,
    ReconciliationResult,
    ReloadResult,
)

if TYPE_CHECKING:
    from ..confstore.store import ConfigStore
    from ..repository.extensions import RecordRepository
    from .collectors import LiveStateCollector
    from .reload import ReloadController

logger = logging.getLogger(__name__)


def _failure(identifier: str, exc: Exception, action: str | None = None) -> ItemResult:
    error_type = exc.error_type if isinstance(exc, ReconcileError) else "error"
    return ItemResult(
        identifier=identifier,
        success=False,
        action=action,
        error=str(exc),
        error_type=error_type,
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncExecutor:
    """Write records to the engine config, or live state to the records.

    Args:
        config_store: Store used to patch and write the PJSIP file.
        repository: Record repository.
        live: Collector for the engine's current endpoints.
        reloader: Serialised reload controller.
        pjsip_path: PJSIP config file holding the extension sections.
        identifier_locks: Per-identifier lock registry.
        max_reported_errors: Error details kept in each report.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        repository: RecordRepository,
        live: LiveStateCollector,
        reloader: ReloadController,
        pjsip_path: Path | str,
        identifier_locks: KeyedLock | None = None,
        max_reported_errors: int = 10,
    ) -> None:
        self.config_store = config_store
        self.repository = repository
        self.live = live
        self.reloader = reloader
        self.pjsip_path = Path(pjsip_path)
        self.identifier_locks = identifier_locks or KeyedLock()
        self.max_reported_errors = max_reported_errors

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _report(
        self,
        operation: str,
        results: list[ItemResult],
        started_at: str,
        reload: ReloadResult | None = None,
        cancelled: bool = False,
    ) -> OperationReport:
        report = OperationReport(
            operation=operation,
            results=results,
            reload=reload,
            cancelled=cancelled,
            max_reported_errors=self.max_reported_errors,
            started_at=started_at,
            completed_at=_now(),
        )
        log = logger.info if report.success else logger.warning
        log("%s", report.summary())
        return report

    def _get_record(self, identifier: str) -> ExtensionRecord | None:
        try:
            return self.repository.get(identifier)
        except ReconcileError:
            raise
        except Exception as e:
            raise RepositoryError(f"Cannot read record {identifier}: {e}") from e

    def _current_record(
        self, identifier: str, expected: ReconciliationResult | None
    ) -> ExtensionRecord:
        """Fetch the record, checking it is unchanged since *expected*."""
        record = self._get_record(identifier)
        known = expected.record_fingerprints.get(identifier) if expected else None
        if record is None:
            if known is not None:
                raise ConflictError(
                    f"Extension {identifier} was deleted since reconciliation"
                )
            raise NotFoundError(f"No record for extension {identifier}")
        if expected is not None and known != record.fingerprint():
            raise ConflictError(
                f"Extension {identifier} changed since reconciliation; re-run status"
            )
        return record

    def _patch_config(
        self,
        operation: str,
        identifiers: Iterable[str],
        patch: Callable[[ConfigDocument, str], tuple[ConfigDocument, str]],
        cancel: threading.Event | None,
    ) -> OperationReport:
        """Apply *patch* per identifier to one document, write once, reload once."""
        started_at = _now()
        identifiers = list(dict.fromkeys(identifiers))
        results: list[ItemResult] = []
        pending: list[tuple[str, str]] = []
        cancelled = False
        written = False

        with self.config_store.locks.hold(lock_key(self.pjsip_path)):
            try:
                doc = self.config_store.load(self.pjsip_path)
            except ReconcileError as e:
                logger.error("Cannot load %s: %s", self.pjsip_path, e)
                results = [_failure(i, e) for i in identifiers]
                return self._report(operation, results, started_at)

            for identifier in identifiers:
                if cancel is not None and cancel.is_set():
                    logger.warning("%s cancelled after %d item(s)", operation, len(pending) + len(results))
                    cancelled = True
                    break
                try:
                    with self.identifier_locks.hold(identifier):
                        before = doc.serialize()
                        patched, action = patch(doc, identifier)
                        if patched.serialize() == before:
                            action = "unchanged"
                        doc = patched
                    pending.append((identifier, action))
                except ReconcileError as e:
                    logger.warning("Extension %s: %s", identifier, e)
                    results.append(_failure(identifier, e))
                except Exception as e:
                    logger.exception("Unexpected error for extension %s", identifier)
                    results.append(_failure(identifier, e))

            write_error: ReconcileError | None = None
            if any(action != "unchanged" for _, action in pending):
                try:
                    self.config_store.write(self.pjsip_path, doc)
                    written = True
                except ReconcileError as e:
                    logger.error("Writing %s failed: %s", self.pjsip_path, e)
                    write_error = e

        for identifier, action in pending:
            if write_error is not None and action != "unchanged":
                results.append(_failure(identifier, write_error, action))
            else:
                results.append(ItemResult(identifier=identifier, success=True, action=action))

        reload = self.reloader.try_reload() if written else None
        return self._report(operation, results, started_at, reload, cancelled)

    # ------------------------------------------------------------------
    # Record -> live
    # ------------------------------------------------------------------

    def apply_record_to_live(
        self,
        identifiers: Iterable[str],
        expected: ReconciliationResult | None = None,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Write each record's endpoint, auth and aor sections, then reload once.

        Args:
            identifiers: Extension numbers to push.
            expected: Reconciliation the caller acted on; a record that
                changed since then fails with ``ConflictError``.
            cancel: Stops processing further identifiers once set.
        """

        def patch(doc: ConfigDocument, identifier: str) -> tuple[ConfigDocument, str]:
            record = self._current_record(identifier, expected)
            action = "written" if record.enabled else "removed"
            return apply_record(doc, record), action

        return self._patch_config("record_to_live", identifiers, patch, cancel)

    def remove_from_live(
        self,
        identifiers: Iterable[str],
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Delete the extensions' sections (any naming), then reload once."""

        def patch(doc: ConfigDocument, identifier: str) -> tuple[ConfigDocument, str]:
            return remove_extension(doc, identifier), "removed"

        return self._patch_config("remove_from_live", identifiers, patch, cancel)

    # ------------------------------------------------------------------
    # Live -> record
    # ------------------------------------------------------------------

    def apply_live_to_record(
        self,
        identifiers: Iterable[str],
        expected: ReconciliationResult | None = None,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Map each live endpoint onto its record and save it.

        Secrets are read from the PJSIP file's auth section, since the
        engine only reports whether one is set.
        """
        started_at = _now()
        identifiers = list(dict.fromkeys(identifiers))
        try:
            states = self.live.collect_all()
        except ReconcileError as e:
            logger.error("Cannot collect live state: %s", e)
            return self._report(
                "live_to_record", [_failure(i, e) for i in identifiers], started_at
            )

        try:
            doc: ConfigDocument | None = self.config_store.load(self.pjsip_path)
        except ParseError as e:
            logger.warning("Secrets unavailable, %s", e)
            doc = None

        results: list[ItemResult] = []
        cancelled = False
        for identifier in identifiers:
            if cancel is not None and cancel.is_set():
                logger.warning("live_to_record cancelled after %d item(s)", len(results))
                cancelled = True
                break
            try:
                with self.identifier_locks.hold(identifier):
                    results.append(self._pull_one(identifier, states, doc, expected))
            except ReconcileError as e:
                logger.warning("Extension %s: %s", identifier, e)
                results.append(_failure(identifier, e))
            except Exception as e:
                logger.exception("Unexpected error for extension %s", identifier)
                results.append(_failure(identifier, e))

        return self._report("live_to_record", results, started_at, cancelled=cancelled)

    def _pull_one(
        self,
        identifier: str,
        states: dict,
        doc: ConfigDocument | None,
        expected: ReconciliationResult | None,
    ) -> ItemResult:
        live = states.get(identifier)
        if live is None:
            raise NotFoundError(f"Extension {identifier} is not loaded in the engine")
        if expected is not None:
            known = expected.live_fingerprints.get(identifier)
            if known is not None and known != live.fingerprint():
                raise ConflictError(
                    f"Live state of {identifier} changed since reconciliation"
                )

        existing = self._get_record(identifier)
        if expected is not None:
            known_record = expected.record_fingerprints.get(identifier)
            current = existing.fingerprint() if existing else None
            if known_record != current:
                raise ConflictError(
                    f"Extension {identifier} changed since reconciliation; re-run status"
                )

        secret = secret_from_document(doc, identifier) if doc is not None else None
        updated = record_from_live(live, existing, secret)
        if existing is not None and updated == existing:
            return ItemResult(identifier=identifier, success=True, action="unchanged")

        try:
            self.repository.save(updated)
        except ReconcileError:
            raise
        except Exception as e:
            raise RepositoryError(f"Cannot save record {identifier}: {e}") from e
        action = "created" if existing is None else "updated"
        logger.info("Extension %s %s from live state", identifier, action)
        return ItemResult(identifier=identifier, success=True, action=action)

    # ------------------------------------------------------------------
    # Auto
    # ------------------------------------------------------------------

    def sync_auto(
        self,
        result: ReconciliationResult,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Resolve drift that needs no human decision.

        Enabled record-only extensions are pushed to the engine, live-only
        endpoints are pulled into records, and mismatches are reported as
        conflicts. Disabled record-only extensions are skipped.
        """
        started_at = _now()
        to_live: list[str] = []
        to_record: list[str] = []
        results: list[ItemResult] = []

        for identifier, status in result.statuses.items():
            if status.kind == "record_only":
                if status.enabled:
                    to_live.append(identifier)
                else:
                    results.append(
                        ItemResult(identifier=identifier, success=True, action="skipped")
                    )
            elif status.kind == "live_only":
                to_record.append(identifier)
            elif status.kind == "mismatched":
                fields = ", ".join(status.fields)
                results.append(
                    ItemResult(
                        identifier=identifier,
                        success=False,
                        action="conflict",
                        error=f"Record and live state differ in: {fields}",
                        error_type=ConflictError.error_type,
                    )
                )

        pushed = self.apply_record_to_live(to_live, expected=result, cancel=cancel) if to_live else None
        pulled = self.apply_live_to_record(to_record, expected=result, cancel=cancel) if to_record else None

        for sub in (pushed, pulled):
            if sub is not None:
                results.extend(sub.results)

        return self._report(
            "auto",
            results,
            started_at,
            reload=pushed.reload if pushed is not None else None,
            cancelled=any(sub is not None and sub.cancelled for sub in (pushed, pulled)),
        )
