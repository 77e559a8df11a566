"""Tests for mapping records to PJSIP sections and live state to records."""

import pytest
from conftest import make_record

from pbx_reconcile.confstore.document import parse_text
from pbx_reconcile.errors import WriteError
from pbx_reconcile.sync.mapper import (
    apply_record,
    callerid_for,
    effective_name,
    extension_sections,
    live_state_from_detail,
    normalize_codecs,
    owner_of,
    parse_callerid,
    record_from_live,
    record_to_sections,
    remove_extension,
    secret_from_document,
)
from pbx_reconcile.sync.models import LiveEndpointState


@pytest.mark.parametrize(
    "name, owner",
    [
        ("101", "101"),
        ("101-auth", "101"),
        ("101_aor", "101"),
        ("auth101", "101"),
        ("aor-101", "101"),
        ("transport-udp", None),
        ("sales", None),
    ],
)
def test_owner_of(name, owner):
    assert owner_of(name) == owner


class TestHelpers:
    def test_normalize_codecs(self):
        assert normalize_codecs("ULAW, alaw|ulaw") == ("ulaw", "alaw")
        assert normalize_codecs(["all", "g722"]) == ("g722",)
        assert normalize_codecs(None) == ()

    def test_parse_callerid(self):
        assert parse_callerid('"Alice Smith" <101>') == ("Alice Smith", "101")
        assert parse_callerid("Bob <102>") == ("Bob", "102")
        assert parse_callerid("Carol") == ("Carol", None)
        assert parse_callerid(None) == (None, None)

    def test_callerid_for(self):
        assert callerid_for(make_record("101", name="Alice")) == '"Alice" <101>'
        assert callerid_for(make_record("101", name="")) is None
        custom = make_record("101", caller_id='"Front Desk" <100>')
        assert callerid_for(custom) == '"Front Desk" <100>'

    def test_effective_name(self):
        assert effective_name(make_record("101", name="Alice")) == "Alice"
        assert effective_name(make_record("101", caller_id='"Desk" <100>')) == "Desk"


class TestApplyRecord:
    def test_renders_three_sections(self):
        record = make_record("101", name="Alice", secret="pw", codecs=("ulaw", "g722"))
        doc = apply_record(parse_text(""), record)
        endpoint = doc.find("endpoint", "101")
        assert endpoint.get("context") == "from-internal"
        assert endpoint.get("disallow") == "all"
        assert endpoint.get_all("allow") == ["ulaw", "g722"]
        assert endpoint.get("callerid") == '"Alice" <101>'
        assert endpoint.get("mailboxes") is None
        assert doc.find("auth", "101").get("password") == "pw"
        assert doc.find("aor", "101").get("max_contacts") == "1"

    def test_voicemail_sets_mailbox(self):
        doc = apply_record(parse_text(""), make_record("101", voicemail_enabled=True))
        assert doc.find("endpoint", "101").get("mailboxes") == "101@default"

    def test_replaces_alternative_names(self):
        text = (
            "[101]\ntype=endpoint\nauth=101-auth\n\n"
            "[101-auth]\ntype=auth\npassword=old\n\n"
            "[aor101]\ntype=aor\n\n"
            "[102]\ntype=endpoint\n"
        )
        doc = apply_record(parse_text(text), make_record("101", secret="new"))
        names = [(s.section_type, s.name) for s in doc.sections]
        assert names == [
            ("endpoint", "101"),
            ("endpoint", "102"),
            ("auth", "101"),
            ("aor", "101"),
        ]
        assert doc.find("auth", "101").get("password") == "new"

    def test_idempotent(self):
        record = make_record("101")
        once = apply_record(parse_text(""), record)
        twice = apply_record(once, record)
        assert twice.serialize() == once.serialize()

    def test_disabled_record_removed(self):
        doc = apply_record(parse_text(""), make_record("101"))
        doc = apply_record(doc, make_record("101", enabled=False))
        assert extension_sections(doc, "101") == []

    def test_remove_extension_leaves_others(self):
        doc = apply_record(parse_text(""), make_record("101"))
        doc = apply_record(doc, make_record("102"))
        doc = remove_extension(doc, "101")
        assert extension_sections(doc, "101") == []
        assert len(extension_sections(doc, "102")) == 3

    def test_record_to_sections_order(self):
        kinds = [kind for kind, _ in record_to_sections(make_record("101"))]
        assert kinds == ["endpoint", "auth", "aor"]

    def test_secret_from_document(self):
        doc = parse_text("[101-auth]\ntype=auth\npassword=abc\n")
        assert secret_from_document(doc, "101") == "abc"
        assert secret_from_document(doc, "102") is None

    def test_name_with_line_break_rejected(self):
        doc = parse_text("[102]\ntype=endpoint\ncontext=from-internal\n")
        record = make_record("101", name="x\n[102]\ntype=endpoint\ncontext=evil")
        with pytest.raises(WriteError):
            apply_record(doc, record)
        assert [s.get("context") for s in doc.named("102")] == ["from-internal"]

    def test_secret_with_semicolon_survives(self):
        doc = apply_record(parse_text(""), make_record("101", secret="ab;cd"))
        reparsed = parse_text(doc.serialize())
        assert secret_from_document(reparsed, "101") == "ab;cd"

    def test_templated_endpoint_replaced_in_place(self):
        text = "[ep](!)\ntype=endpoint\n\n[101](ep)\ncontext=from-internal\n"
        doc = apply_record(parse_text(text), make_record("101"))
        headers = [s.lines[0].strip() for s in doc.sections]
        assert headers == ["[ep](!)", "[101](ep)", "[101]", "[101]"]
        assert [s.section_type for s in doc.named("101")] == ["endpoint", "auth", "aor"]
        reparsed = parse_text(doc.serialize())
        assert len(reparsed.of_type("endpoint")) == 2  # template plus 101

    def test_template_not_part_of_extension(self):
        doc = parse_text("[101](!)\ntype=endpoint\n\n[101](101)\ncontext=x\n")
        sections = extension_sections(doc, "101")
        assert len(sections) == 1
        assert not sections[0].is_template
        assert remove_extension(doc, "101").named("101")[0].is_template


class TestLiveMapping:
    def test_live_state_from_detail(self):
        live = live_state_from_detail(
            {"id": "101", "state": "online"},
            {
                "context": "from-internal",
                "transport": "transport-udp",
                "codecs": ["ULAW", "alaw"],
                "callerid": '"Alice" <101>',
                "has_secret": True,
                "ip_address": "10.0.0.5",
                "port": 5060,
            },
        )
        assert live.name == "Alice"
        assert live.codecs == ("ulaw", "alaw")
        assert live.registered is True
        assert live.device_state == "online"
        assert live.ip_address == "10.0.0.5"

    def test_missing_fields_stay_unknown(self):
        live = live_state_from_detail({"id": "101"}, {})
        assert live.name is None
        assert live.codecs is None
        assert live.has_secret is None
        assert live.registered is False

    def test_record_from_live_new(self):
        live = LiveEndpointState(
            identifier="105",
            name="Eve",
            caller_id='"Eve" <105>',
            codecs=("g722",),
            context="from-sales",
            transport="transport-tcp",
            has_secret=True,
        )
        record = record_from_live(live, None, secret="pw105")
        assert record.identifier == "105"
        assert record.name == "Eve"
        assert record.caller_id is None
        assert record.codecs == ("g722",)
        assert record.context == "from-sales"
        assert record.secret == "pw105"
        assert record.enabled is True

    def test_record_from_live_keeps_unreported(self):
        existing = make_record("101", email="a@example.com", max_contacts=3)
        live = LiveEndpointState(identifier="101", context="from-sales")
        record = record_from_live(live, existing)
        assert record.context == "from-sales"
        assert record.name == existing.name
        assert record.secret == existing.secret
        assert record.email == "a@example.com"
        assert record.max_contacts == 3

    def test_record_from_live_clears_secret(self):
        existing = make_record("101", secret="pw")
        live = LiveEndpointState(identifier="101", has_secret=False)
        assert record_from_live(live, existing).secret == ""

    def test_record_from_live_keeps_custom_caller_id(self):
        live = LiveEndpointState(
            identifier="101", name="Desk", caller_id='"Desk" <100>'
        )
        record = record_from_live(live, make_record("101"))
        assert record.caller_id == '"Desk" <100>'
