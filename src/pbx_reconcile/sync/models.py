"""Pydantic models for reconciliation and sync.

Defines the data contracts shared by the collectors, the reconciler and
the executor:

- ``ExtensionRecord``: intended state of one extension (database side).
- ``LiveEndpointState``: actual state of one endpoint (engine side).
- ``SyncStatus``: tagged union of ``Matched``, ``RecordOnly``,
  ``LiveOnly`` and ``Mismatched``.
- ``ReconciliationResult``: one status per identifier plus counts.
- ``ItemResult``, ``ReloadResult``, ``OperationReport``: outcome of a
  sync or backup operation.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from ..fileio import content_hash

DEFAULT_CONTEXT = "from-internal"
DEFAULT_TRANSPORT = "transport-udp"
DEFAULT_CODECS = ("ulaw", "alaw", "g722")

# Fields compared between record and live state, in report order
COMPARED_FIELDS = ("name", "has_secret", "codecs", "context", "transport", "enabled")


def identifier_sort_key(identifier: str) -> tuple[int, int, str]:
    """Sort numeric extension numbers numerically, everything else after."""
    if identifier.isdigit():
        return (0, int(identifier), identifier)
    return (1, 0, identifier)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExtensionRecord(BaseModel):
    """Intended state of one extension, as stored in the database.

    Attributes:
        identifier: Extension number; the business key shared with the engine.
        secret: SIP password. Never rendered in reports or reprs.
        codecs: Allowed codecs in preference order.
        caller_id: Explicit caller id; built from name and number if unset.
    """

    identifier: str
    name: str = ""
    secret: str = Field(default="", repr=False)
    codecs: tuple[str, ...] = DEFAULT_CODECS
    context: str = DEFAULT_CONTEXT
    transport: str = DEFAULT_TRANSPORT
    enabled: bool = True
    caller_id: str | None = None
    email: str | None = None
    max_contacts: int = 1
    direct_media: bool = False
    qualify_frequency: int = 60
    voicemail_enabled: bool = False

    model_config = {"frozen": True}

    def fingerprint(self) -> str:
        """Hash of every field, used to detect changes before a write."""
        return content_hash(self.model_dump_json().encode("utf-8"))


class LiveEndpointState(BaseModel):
    """Actual state of one endpoint as reported by the engine.

    ``None`` means the engine did not report the field; such fields are
    not compared.
    """

    identifier: str
    name: str | None = None
    has_secret: bool | None = None
    codecs: tuple[str, ...] | None = None
    context: str | None = None
    transport: str | None = None
    enabled: bool | None = True
    registered: bool = False
    device_state: str = "unknown"
    ip_address: str | None = None
    port: int | None = None
    caller_id: str | None = None

    model_config = {"frozen": True}

    def fingerprint(self) -> str:
        return content_hash(self.model_dump_json().encode("utf-8"))


# ---------------------------------------------------------------------------
# Sync status (tagged union)
# ---------------------------------------------------------------------------


class FieldDiff(BaseModel):
    """Differing values of one compared field."""

    record_value: Any = None
    live_value: Any = None

    model_config = {"frozen": True}


class Matched(BaseModel):
    kind: Literal["matched"] = "matched"
    identifier: str

    model_config = {"frozen": True}


class RecordOnly(BaseModel):
    """In the database but not loaded in the engine."""

    kind: Literal["record_only"] = "record_only"
    identifier: str
    enabled: bool = True

    model_config = {"frozen": True}


class LiveOnly(BaseModel):
    """Loaded in the engine but absent from the database."""

    kind: Literal["live_only"] = "live_only"
    identifier: str

    model_config = {"frozen": True}


class Mismatched(BaseModel):
    """Present on both sides with at least one differing field."""

    kind: Literal["mismatched"] = "mismatched"
    identifier: str
    fields: dict[str, FieldDiff]

    model_config = {"frozen": True}


SyncStatus = Annotated[
    Union[Matched, RecordOnly, LiveOnly, Mismatched],
    Field(discriminator="kind"),
]

STATUS_KINDS = ("matched", "record_only", "live_only", "mismatched")


class ReconciliationResult(BaseModel):
    """Classification of every identifier seen on either side.

    Attributes:
        statuses: Identifier -> status, in identifier order.
        record_fingerprints: Identifier -> record fingerprint at
            reconciliation time, checked again before acting on it.
        live_fingerprints: Identifier -> live state fingerprint.
        reconciled_at: ISO 8601 timestamp.
    """

    statuses: dict[str, SyncStatus] = {}
    record_fingerprints: dict[str, str] = {}
    live_fingerprints: dict[str, str] = {}
    reconciled_at: str = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

    @property
    def counts(self) -> dict[str, int]:
        counts = dict.fromkeys(STATUS_KINDS, 0)
        for status in self.statuses.values():
            counts[status.kind] += 1
        return counts

    @property
    def total(self) -> int:
        return len(self.statuses)

    def identifiers(self, kind: str) -> list[str]:
        """Identifiers classified as *kind*, in identifier order."""
        return [i for i, s in self.statuses.items() if s.kind == kind]

    def get(self, identifier: str) -> SyncStatus | None:
        return self.statuses.get(identifier)


# ---------------------------------------------------------------------------
# Operation outcomes
# ---------------------------------------------------------------------------


class ItemResult(BaseModel):
    """Outcome for one identifier (or one file) within an operation.

    Attributes:
        identifier: Extension number or file path.
        success: Whether the item was handled.
        action: What was done, e.g. ``"written"``, ``"unchanged"``,
            ``"created"``, ``"skipped"``, ``"conflict"``.
        error: Error message if the item failed.
        error_type: ``ReconcileError.error_type`` of the failure.
    """

    identifier: str
    success: bool
    action: str | None = None
    error: str | None = None
    error_type: str | None = None

    model_config = {"frozen": True}


class ReloadResult(BaseModel):
    """Outcome of one engine reload."""

    success: bool
    message: str = ""
    raw_error: str = ""
    error_type: str | None = None

    model_config = {"frozen": True}


class OperationReport(BaseModel):
    """Aggregate outcome of a sync or backup operation.

    A report is successful only when no item failed and the reload (if
    one was needed) succeeded. ``reload`` is reported separately so
    "written but not applied" can be told apart from "not written".
    """

    operation: str
    results: list[ItemResult] = []
    reload: ReloadResult | None = None
    cancelled: bool = False
    max_reported_errors: int = 10
    started_at: str = Field(default_factory=_utcnow)
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def errors(self) -> list[ItemResult]:
        """The first ``max_reported_errors`` failed items."""
        return [r for r in self.results if not r.success][
            : self.max_reported_errors
        ]

    @property
    def success(self) -> bool:
        reload_ok = self.reload is None or self.reload.success
        return self.failed == 0 and reload_ok

    def summary(self) -> str:
        """One-line "N succeeded, M failed" summary."""
        text = f"{self.operation}: {self.succeeded} succeeded, {self.failed} failed"
        if self.reload is not None:
            text += ", reload " + ("ok" if self.reload.success else "FAILED")
        if self.cancelled:
            text += " (cancelled)"
        return text
