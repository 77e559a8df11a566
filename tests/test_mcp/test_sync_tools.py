"""Tests for the sync MCP tools, run against a real service on tmp files."""

import mcp.types as types
import pytest
from conftest import make_record

import pbx_reconcile.core.async_utils as async_utils
from pbx_reconcile.mcp.tools import ALL_SPECS, ToolRegistry


@pytest.fixture(autouse=True)
def no_semaphore(monkeypatch):
    monkeypatch.setattr(async_utils, "_semaphore", None)


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


def _text(result):
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestSyncStatus:
    async def test_reports_drift(self, registry, service, memory_repo):
        memory_repo.save(make_record("102"))

        result = await registry.call_tool("sync_status", {}, service)

        assert not result.isError
        assert "1 database only, 1 engine only" in _text(result)
        counts = result.structuredContent["counts"]
        assert counts["record_only"] == 1
        assert counts["live_only"] == 1
        assert counts["total"] == 2

    async def test_show_matched(self, registry, service):
        await registry.call_tool("sync_live_to_record", {}, service)
        hidden = await registry.call_tool("sync_status", {}, service)
        shown = await registry.call_tool("sync_status", {"show_matched": True}, service)
        assert "In sync:" not in _text(hidden)
        assert "In sync:" in _text(shown)

    async def test_engine_down(self, registry, service, fake_engine):
        fake_engine.unreachable = True
        result = await registry.call_tool("sync_status", {}, service)
        assert result.isError
        assert "Error (engine_unreachable)" in _text(result)


class TestSyncOperations:
    async def test_record_to_live(self, registry, service, memory_repo, fake_engine):
        memory_repo.save(make_record("102"))

        result = await registry.call_tool("sync_record_to_live", {"identifier": "102"}, service)

        assert not result.isError
        data = result.structuredContent
        assert data["operation"] == "record_to_live"
        assert data["succeeded"] == 1
        assert data["reload"]["success"] is True
        assert fake_engine.reload_calls == 1

    async def test_invalid_identifier(self, registry, service):
        result = await registry.call_tool("sync_record_to_live", {"identifier": "../x"}, service)
        assert result.isError
        assert "Error (validation_error)" in _text(result)

    async def test_reload_failure_is_error(self, registry, service, memory_repo, fake_engine):
        fake_engine.fail_reload = "res_pjsip.so failed"
        memory_repo.save(make_record("102"))
        result = await registry.call_tool("sync_record_to_live", {}, service)
        assert result.isError
        assert result.structuredContent["failed"] == 0
        assert result.structuredContent["reload"]["raw_error"] == "res_pjsip.so failed"

    async def test_live_to_record(self, registry, service, memory_repo):
        result = await registry.call_tool("sync_live_to_record", {"identifier": "101"}, service)
        assert not result.isError
        assert memory_repo.records["101"].name == "Alice"

    async def test_auto_reports_conflicts(self, registry, service, memory_repo):
        memory_repo.save(make_record("101", name="Someone Else", secret="s3cret"))
        result = await registry.call_tool("sync_auto", {}, service)
        assert result.isError
        assert result.structuredContent["errors"][0]["error_type"] == "conflict"

    async def test_remove_from_live(self, registry, service, pjsip_path):
        result = await registry.call_tool("sync_remove_from_live", {"identifiers": ["101"]}, service)
        assert not result.isError
        assert "type=endpoint" not in pjsip_path.read_text()

    @pytest.mark.parametrize("args", [{}, {"identifiers": []}, {"identifiers": "101"}])
    async def test_remove_requires_list(self, registry, service, args):
        result = await registry.call_tool("sync_remove_from_live", args, service)
        assert result.isError
        assert "identifiers must be a non-empty list" in _text(result)
