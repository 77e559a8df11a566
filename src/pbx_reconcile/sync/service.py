"""Operations exposed to the surrounding application.

``ReconcileService`` wires the stores, collectors, reconciler, executor
and reload controller together and is what the CLI and the MCP server
call. Every mutating operation returns an ``OperationReport``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..backup.store import BackupEntry, BackupStatus, BackupStore
from ..confstore.store import ConfigStore
from ..core.locks import KeyedLock
from ..errors import ReconcileError
from ..validators import validate_backup_id, validate_identifier, validate_keep
from .collectors import LiveStateCollector, RecordStateCollector
from .executor import SyncExecutor
from .models import ItemResult, OperationReport, ReconciliationResult
from .reconciler import Reconciler
from .reload import ReloadController

if TYPE_CHECKING:
    from ..config import Config
    from ..core.client import EngineControl
    from ..repository.extensions import RecordRepository

logger = logging.getLogger(__name__)


def _require(check: tuple[bool, str]) -> None:
    is_valid, message = check
    if not is_valid:
        raise ValueError(message)


class ReconcileService:
    """Facade over reconciliation, sync and backup.

    Args:
        engine: Engine control client.
        repository: Record repository.
        backups: Backup store.
        pjsip_path: PJSIP config file written by record-to-live sync.
        managed_files: Files covered by bulk backup, cleanup and status.
        default_keep: Retention used by ``cleanup_backups`` when no
            count is given.
        max_reported_errors: Error details kept per report.
    """

    def __init__(
        self,
        engine: EngineControl,
        repository: RecordRepository,
        backups: BackupStore,
        pjsip_path: Path | str,
        managed_files: list[str] | None = None,
        default_keep: int = 5,
        max_reported_errors: int = 10,
    ) -> None:
        self.engine = engine
        self.repository = repository
        self.backups = backups
        self.pjsip_path = Path(pjsip_path)
        self.managed_files = [Path(p) for p in (managed_files or [self.pjsip_path])]
        self.default_keep = default_keep
        self.max_reported_errors = max_reported_errors

        self.config_store = ConfigStore(backups)
        self.live = LiveStateCollector(engine)
        self.records = RecordStateCollector(repository)
        self.reconciler = Reconciler()
        self.reloader = ReloadController(engine)
        self.executor = SyncExecutor(
            config_store=self.config_store,
            repository=repository,
            live=self.live,
            reloader=self.reloader,
            pjsip_path=self.pjsip_path,
            identifier_locks=KeyedLock(),
            max_reported_errors=max_reported_errors,
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        engine: EngineControl | None = None,
        repository: RecordRepository | None = None,
    ) -> ReconcileService:
        """Build a service from runtime configuration.

        *engine* and *repository* default to an ``AriClient`` and a
        ``SqlExtensionRepository`` for ``config.database_url``.
        """
        if engine is None:
            from ..core.client import AriClient

            engine = AriClient(config)
        if repository is None:
            from ..repository.extensions import SqlExtensionRepository

            repository = SqlExtensionRepository.from_url(config.database_url)

        backups = BackupStore(
            backup_dir=config.backup_dir,
            tag=config.backup_tag,
            locks=KeyedLock(),
        )
        return cls(
            engine=engine,
            repository=repository,
            backups=backups,
            pjsip_path=config.pjsip_config,
            managed_files=config.managed_files,
            default_keep=config.backup_keep,
            max_reported_errors=config.max_reported_errors,
        )

    # ------------------------------------------------------------------
    # Reconciliation and sync
    # ------------------------------------------------------------------

    def get_sync_status(self) -> ReconciliationResult:
        """Reconcile current records against the live engine.

        Raises:
            EngineUnreachableError: If the engine cannot be reached.
            RepositoryError: If records cannot be read.
        """
        records = self.records.collect_all()
        live = self.live.collect_all()
        return self.reconciler.reconcile(records, live)

    def sync_record_to_live(
        self,
        identifier: str | None = None,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Push one record (or every record) to the engine config.

        Only the record side is snapshotted, so this works while the
        engine is down; the reload failure is then reported separately.
        """
        records = self.records.collect_all()
        snapshot = self.reconciler.reconcile(records, {})
        if identifier is not None:
            _require(validate_identifier(identifier))
            identifiers = [identifier]
        else:
            identifiers = list(records)
        return self.executor.apply_record_to_live(identifiers, expected=snapshot, cancel=cancel)

    def sync_live_to_record(
        self,
        identifier: str | None = None,
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Pull one live endpoint (or every one) into the records."""
        result = self.get_sync_status()
        if identifier is not None:
            _require(validate_identifier(identifier))
            identifiers = [identifier]
        else:
            identifiers = [
                i for i, s in result.statuses.items() if s.kind != "record_only"
            ]
        return self.executor.apply_live_to_record(identifiers, expected=result, cancel=cancel)

    def sync_auto(self, cancel: threading.Event | None = None) -> OperationReport:
        """Resolve one-sided drift both ways; report mismatches as conflicts."""
        return self.executor.sync_auto(self.get_sync_status(), cancel=cancel)

    def remove_from_live(
        self,
        identifiers: list[str],
        cancel: threading.Event | None = None,
    ) -> OperationReport:
        """Delete extensions from the engine config and reload."""
        for identifier in identifiers:
            _require(validate_identifier(identifier))
        return self.executor.remove_from_live(identifiers, cancel=cancel)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def _paths(self, path: Path | str | None) -> list[Path]:
        return [Path(path)] if path is not None else list(self.managed_files)

    def _backup_report(self, operation: str, results: list[ItemResult], started_at: str) -> OperationReport:
        report = OperationReport(
            operation=operation,
            results=results,
            max_reported_errors=self.max_reported_errors,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        log = logger.info if report.success else logger.warning
        log("%s", report.summary())
        return report

    def backup_now(
        self, path: Path | str | None = None, force: bool = False
    ) -> OperationReport:
        """Back up one file, or every managed file when *path* is None."""
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[ItemResult] = []
        for target in self._paths(path):
            try:
                before = self.backups.latest(target)
                entry = self.backups.backup(target, force=force)
            except ReconcileError as e:
                results.append(
                    ItemResult(
                        identifier=str(target),
                        success=False,
                        error=str(e),
                        error_type=e.error_type,
                    )
                )
                continue
            if entry is None:
                action = "missing"
            elif before is not None and entry.backup_id == before.backup_id:
                action = "unchanged"
            else:
                action = f"created {entry.backup_id}"
            results.append(ItemResult(identifier=str(target), success=True, action=action))
        return self._backup_report("backup", results, started_at)

    def list_backups(self, path: Path | str | None = None) -> list[BackupEntry]:
        """Backups of *path* (default: the PJSIP file), newest first."""
        return self.backups.list(Path(path) if path is not None else self.pjsip_path)

    def latest_backup(self, path: Path | str) -> BackupEntry | None:
        return self.backups.latest(path)

    def restore_backup(
        self, backup_id: str, path: Path | str | None = None
    ) -> OperationReport:
        """Restore *backup_id* over *path* (default: the PJSIP file).

        Raises:
            ValueError: If *backup_id* is malformed.
        """
        _require(validate_backup_id(backup_id))
        started_at = datetime.now(timezone.utc).isoformat()
        target = Path(path) if path is not None else self.pjsip_path
        try:
            self.backups.restore(backup_id, target)
            result = ItemResult(
                identifier=str(target), success=True, action=f"restored {backup_id}"
            )
        except ReconcileError as e:
            result = ItemResult(
                identifier=str(target),
                success=False,
                error=str(e),
                error_type=e.error_type,
            )
        return self._backup_report("restore", [result], started_at)

    def cleanup_backups(
        self, path: Path | str | None = None, keep: int | None = None
    ) -> OperationReport:
        """Keep the *keep* newest backups of one file (or every managed file)."""
        keep = self.default_keep if keep is None else keep
        _require(validate_keep(keep))
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[ItemResult] = []
        for target in self._paths(path):
            try:
                deleted = self.backups.cleanup(target, keep)
                results.append(
                    ItemResult(
                        identifier=str(target),
                        success=True,
                        action=f"deleted {len(deleted)}" if deleted else "unchanged",
                    )
                )
            except ReconcileError as e:
                results.append(
                    ItemResult(
                        identifier=str(target),
                        success=False,
                        error=str(e),
                        error_type=e.error_type,
                    )
                )
        return self._backup_report("cleanup", results, started_at)

    def backup_status(self) -> list[BackupStatus]:
        """Backup count and newest backup for every managed file."""
        return self.backups.status(self.managed_files)
