"""Classify each extension by comparing intended and actual state.

For every identifier in records ∪ live:

- only a record -> ``RecordOnly``
- only live     -> ``LiveOnly``
- both          -> compare ``COMPARED_FIELDS``; any difference gives
  ``Mismatched`` with per-field diffs, otherwise ``Matched``.

Codecs are compared as sets, secrets by presence only. A field the engine
did not report (``None``) is not compared. The result depends only on the
two snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .mapper import effective_name, normalize_codecs
from .models import (
    COMPARED_FIELDS,
    DEFAULT_CONTEXT,
    DEFAULT_TRANSPORT,
    ExtensionRecord,
    FieldDiff,
    LiveEndpointState,
    LiveOnly,
    Matched,
    Mismatched,
    ReconciliationResult,
    RecordOnly,
    SyncStatus,
    identifier_sort_key,
)

logger = logging.getLogger(__name__)


def record_values(record: ExtensionRecord) -> dict[str, Any]:
    """Comparable view of a record, with defaults applied."""
    return {
        "name": effective_name(record),
        "has_secret": bool(record.secret),
        "codecs": normalize_codecs(record.codecs),
        "context": record.context or DEFAULT_CONTEXT,
        "transport": record.transport or DEFAULT_TRANSPORT,
        "enabled": record.enabled,
    }


def live_values(live: LiveEndpointState) -> dict[str, Any]:
    return {name: getattr(live, name) for name in COMPARED_FIELDS}


def _values_equal(field: str, record_value: Any, live_value: Any) -> bool:
    if field == "codecs":
        return set(record_value) == set(live_value)
    if field == "name":
        return (record_value or "") == (live_value or "")
    return record_value == live_value


def _report_value(field: str, value: Any) -> Any:
    if field == "codecs":
        return sorted(value)
    return value


def compare(record: ExtensionRecord, live: LiveEndpointState) -> dict[str, FieldDiff]:
    """Field-level differences between a record and its live state."""
    ours = record_values(record)
    theirs = live_values(live)
    diffs: dict[str, FieldDiff] = {}
    for field in COMPARED_FIELDS:
        live_value = theirs[field]
        if live_value is None:
            continue
        if not _values_equal(field, ours[field], live_value):
            diffs[field] = FieldDiff(
                record_value=_report_value(field, ours[field]),
                live_value=_report_value(field, live_value),
            )
    return diffs


def classify(
    identifier: str,
    record: ExtensionRecord | None,
    live: LiveEndpointState | None,
) -> SyncStatus:
    if record is not None and live is None:
        return RecordOnly(identifier=identifier, enabled=record.enabled)
    if record is None and live is not None:
        return LiveOnly(identifier=identifier)
    if record is None or live is None:
        raise ValueError(f"Identifier {identifier} is absent from both sides")
    diffs = compare(record, live)
    if diffs:
        return Mismatched(identifier=identifier, fields=diffs)
    return Matched(identifier=identifier)


class Reconciler:
    """Stateless comparison of record and live snapshots."""

    def reconcile(
        self,
        records: Mapping[str, ExtensionRecord],
        live: Mapping[str, LiveEndpointState],
    ) -> ReconciliationResult:
        """Return one ``SyncStatus`` per identifier in records ∪ live."""
        identifiers = sorted(set(records) | set(live), key=identifier_sort_key)
        statuses = {
            identifier: classify(identifier, records.get(identifier), live.get(identifier))
            for identifier in identifiers
        }
        result = ReconciliationResult(
            statuses=statuses,
            record_fingerprints={i: r.fingerprint() for i, r in records.items()},
            live_fingerprints={i: s.fingerprint() for i, s in live.items()},
        )
        logger.info(
            "Reconciled %d extensions: %s",
            result.total,
            ", ".join(f"{k}={v}" for k, v in result.counts.items()),
        )
        return result
