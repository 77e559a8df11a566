"""Shared pytest fixtures for pbx-reconcile tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from pbx_reconcile.backup.store import BackupStore
from pbx_reconcile.config import Config
from pbx_reconcile.confstore.document import parse_text
from pbx_reconcile.errors import (
    EngineUnreachableError,
    NotFoundError,
    ReloadError,
    RepositoryError,
)
from pbx_reconcile.sync.models import ExtensionRecord
from pbx_reconcile.sync.service import ReconcileService

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Asterisk engine",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Asterisk engine"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEngine:
    """EngineControl replacement backed by a PJSIP file.

    The endpoints it reports are the ones in the file as of the last
    ``reload()``, like a real engine that only re-reads config on reload.
    """

    def __init__(self, pjsip_path: Path, states: dict[str, str] | None = None):
        self.pjsip_path = pjsip_path
        self.states = states or {}
        self.reload_calls = 0
        self.fail_reload: str | None = None
        self.unreachable = False
        self.vanish: set[str] = set()
        self._loaded: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        text = self.pjsip_path.read_text() if self.pjsip_path.exists() else ""
        doc = parse_text(text)
        passwords = {
            s.name: s.get("password", "") for s in doc.of_type("auth")
        }
        loaded: dict[str, dict[str, Any]] = {}
        for section in doc.of_type("endpoint"):
            auth_ref = section.get("auth")
            loaded[section.name] = {
                "id": section.name,
                "context": section.get("context"),
                "transport": section.get("transport"),
                "codecs": section.get_all("allow"),
                "callerid": section.get("callerid"),
                "has_secret": bool(passwords.get(auth_ref or "", "")),
                "contacts": [],
                "ip_address": None,
                "port": None,
            }
        self._loaded = loaded

    def _check(self) -> None:
        if self.unreachable:
            raise EngineUnreachableError("Cannot connect to engine at http://fake/ari")

    def validate_connection(self) -> str:
        self._check()
        return "20.5.0"

    def list_live_endpoints(self) -> list[dict[str, Any]]:
        self._check()
        return [
            {"id": i, "state": self.states.get(i, "offline"), "channel_ids": []}
            for i in self._loaded
        ]

    def get_endpoint_detail(self, endpoint_id: str) -> dict[str, Any]:
        self._check()
        if endpoint_id in self.vanish or endpoint_id not in self._loaded:
            raise NotFoundError(f"Engine object not found: {endpoint_id}")
        return dict(self._loaded[endpoint_id])

    def reload(self) -> str:
        self._check()
        self.reload_calls += 1
        if self.fail_reload is not None:
            raise ReloadError("Engine failed to reload res_pjsip.so", raw_error=self.fail_reload)
        self._load()
        return ""


class MemoryRepository:
    """RecordRepository replacement holding records in a dict."""

    def __init__(self, records: list[ExtensionRecord] | None = None):
        self.records = {r.identifier: r for r in records or []}
        self.fail_on: set[str] = set()
        self.saves: list[ExtensionRecord] = []

    def list_records(self) -> list[ExtensionRecord]:
        return list(self.records.values())

    def get(self, identifier: str) -> ExtensionRecord | None:
        if identifier in self.fail_on:
            raise RepositoryError(f"Database error reading {identifier}")
        return self.records.get(identifier)

    def save(self, record: ExtensionRecord) -> ExtensionRecord:
        if record.identifier in self.fail_on:
            raise RepositoryError(f"Database error saving {record.identifier}")
        self.records[record.identifier] = record
        self.saves.append(record)
        return record


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


PJSIP_SAMPLE = """\
; PJSIP endpoints
[transport-udp]
type=transport
protocol=udp
bind=0.0.0.0

[101]
type=endpoint
context=from-internal
disallow=all
allow=ulaw
allow=alaw
transport=transport-udp
auth=101
aors=101
callerid="Alice" <101>

[101]
type=auth
auth_type=userpass
username=101
password=s3cret

[101]
type=aor
max_contacts=1
"""


@pytest.fixture
def mock_config(tmp_path):
    """Config pointing every file setting into tmp_path."""
    pjsip = tmp_path / "pjsip.conf"
    return Config(
        ari_url="http://localhost:8088",
        ari_username="pbx",
        ari_password="secret",
        database_url=f"sqlite:///{tmp_path / 'pbx.db'}",
        pjsip_config=str(pjsip),
        managed_files=[str(pjsip), str(tmp_path / "extensions.conf")],
        backup_dir=str(tmp_path / "backups"),
    )


@pytest.fixture
def pjsip_path(tmp_path) -> Path:
    path = tmp_path / "pjsip.conf"
    path.write_text(PJSIP_SAMPLE)
    return path


@pytest.fixture
def fake_engine(pjsip_path) -> FakeEngine:
    return FakeEngine(pjsip_path)


@pytest.fixture
def memory_repo() -> MemoryRepository:
    return MemoryRepository()


@pytest.fixture
def backup_store(tmp_path) -> BackupStore:
    return BackupStore(backup_dir=tmp_path / "backups")


@pytest.fixture
def service(tmp_path, pjsip_path, fake_engine, memory_repo, backup_store) -> ReconcileService:
    return ReconcileService(
        engine=fake_engine,
        repository=memory_repo,
        backups=backup_store,
        pjsip_path=pjsip_path,
        managed_files=[str(pjsip_path), str(tmp_path / "extensions.conf")],
    )


def make_record(identifier: str, **fields: Any) -> ExtensionRecord:
    """ExtensionRecord with test-friendly defaults."""
    defaults: dict[str, Any] = {
        "name": f"User {identifier}",
        "secret": f"pw{identifier}",
        "codecs": ("ulaw", "alaw"),
    }
    defaults.update(fields)
    return ExtensionRecord(identifier=identifier, **defaults)
