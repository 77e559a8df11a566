"""Tests for error response builders."""

import mcp.types as types
import pytest

from pbx_reconcile.errors import (
    ConflictError,
    EngineUnreachableError,
    NotFoundError,
    ParseError,
    ReconcileError,
    ReloadError,
    RepositoryError,
    WriteError,
)
from pbx_reconcile.mcp.tools.errors import (
    build_error_response,
    corrective_action_for,
    translate_reconcile_error,
)


def _text(result):
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def test_build_error_response():
    result = build_error_response("not_found", "Unknown backup", "Use backup_list.")
    assert result.isError is True
    assert _text(result) == "Error (not_found): Unknown backup\n\nAction: Use backup_list."


@pytest.mark.parametrize(
    "error",
    [
        ParseError("missing ']'", path="/etc/asterisk/pjsip.conf", line_number=12),
        WriteError("disk full"),
        EngineUnreachableError("timeout"),
        ReloadError("reload failed", raw_error="bad"),
        RepositoryError("db down"),
        NotFoundError("no such backup"),
        ConflictError("changed"),
    ],
)
def test_every_error_type_has_specific_action(error):
    result = translate_reconcile_error(error)
    text = _text(result)
    assert text.startswith(f"Error ({error.error_type}): ")
    assert corrective_action_for(error.error_type) in text
    assert "Retry later" not in text


def test_parse_error_location_in_message():
    result = translate_reconcile_error(
        ParseError("missing ']'", path="/etc/asterisk/pjsip.conf", line_number=12)
    )
    assert "/etc/asterisk/pjsip.conf:12:" in _text(result)


def test_unknown_type_gets_generic_action():
    assert corrective_action_for(ReconcileError.error_type) == "Retry later or check the server log."
