"""Reconciliation of extension records against live engine state.

Modules:

- ``models``      -- ``ExtensionRecord``, ``LiveEndpointState``, the
  ``SyncStatus`` union, ``ReconciliationResult``, ``OperationReport``.
- ``mapper``      -- record <-> PJSIP sections <-> live state mapping.
- ``collectors``  -- ``LiveStateCollector``, ``RecordStateCollector``.
- ``reconciler``  -- ``Reconciler``: per-identifier classification.
- ``executor``    -- ``SyncExecutor``: record-to-live, live-to-record, auto.
- ``reload``      -- ``ReloadController``: serialised engine reloads.
- ``reporter``    -- text and JSON report formatting.
- ``service``     -- ``ReconcileService``: the operations callers use.

Usage example
-------------
::

    from pbx_reconcile.sync.service import ReconcileService

    service = ReconcileService.from_config(config)
    result = service.get_sync_status()
    report = service.sync_record_to_live()
    print(report.summary())
"""

from .models import (
    ExtensionRecord,
    FieldDiff,
    ItemResult,
    LiveEndpointState,
    LiveOnly,
    Matched,
    Mismatched,
    OperationReport,
    ReconciliationResult,
    RecordOnly,
    ReloadResult,
    SyncStatus,
)
from .reconciler import Reconciler

__all__ = [
    "ExtensionRecord",
    "FieldDiff",
    "ItemResult",
    "LiveEndpointState",
    "LiveOnly",
    "Matched",
    "Mismatched",
    "OperationReport",
    "ReconciliationResult",
    "RecordOnly",
    "Reconciler",
    "ReloadResult",
    "SyncStatus",
]
