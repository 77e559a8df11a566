import pytest

from pbx_reconcile.validators import (
    format_validation_error,
    validate_backup_id,
    validate_identifier,
    validate_keep,
)


def test_format_validation_error():
    assert format_validation_error("Extension", "cannot be empty") == "Extension cannot be empty"


@pytest.mark.parametrize("identifier", ["101", "2000", "alice", "sales.desk", "front-desk_1"])
def test_valid_identifiers(identifier):
    assert validate_identifier(identifier) == (True, "")


@pytest.mark.parametrize(
    "identifier",
    ["", "   ", "../etc", "-101", "bad id", "a/b", "x" * 41, "[101]"],
)
def test_invalid_identifiers(identifier):
    valid, message = validate_identifier(identifier)
    assert not valid
    assert message.startswith("Extension")


def test_backup_id():
    assert validate_backup_id("pjsip.conf.backup.20260101_120000") == (True, "")
    assert not validate_backup_id("")[0]
    assert not validate_backup_id("..")[0]
    assert not validate_backup_id("../pjsip.conf")[0]
    assert not validate_backup_id("backups\\pjsip.conf")[0]


@pytest.mark.parametrize("keep, valid", [(0, True), (5, True), (10000, True), (-1, False), (10001, False)])
def test_keep_range(keep, valid):
    assert validate_keep(keep)[0] is valid


def test_keep_must_be_int():
    assert validate_keep("3")[1] == "Keep must be an integer"
    assert not validate_keep(True)[0]
