"""Mapping between extension records, PJSIP config sections and live state.

An extension ``101`` is rendered as three sections sharing the name
``[101]``: ``type=endpoint``, ``type=auth`` and ``type=aor``. Hand-edited
files sometimes use other names for the auth and aor objects
(``[101-auth]``, ``[auth101]``, ``[aor_101]``); those are recognised as
belonging to the same extension and are replaced by the canonical trio
whenever the extension is written.
"""

from __future__ import annotations

import re
from typing import Any

from ..confstore.document import ConfigDocument, ConfigSection
from .models import (
    DEFAULT_CONTEXT,
    DEFAULT_TRANSPORT,
    ExtensionRecord,
    LiveEndpointState,
)

SECTION_TYPES = ("endpoint", "auth", "aor")

_CANONICAL = re.compile(r"^(\d+)$")
_SUFFIXED = re.compile(r"^(\d+)[-_]?(?:auth|aor|endpoint)$", re.IGNORECASE)
_PREFIXED = re.compile(r"^(?:auth|aor|endpoint)[-_]?(\d+)$", re.IGNORECASE)
_CALLERID = re.compile(r'^\s*"?(?P<name>[^"<]*?)"?\s*<(?P<number>[^>]*)>\s*$')


def owner_of(section_name: str) -> str | None:
    """Return the extension number a section name belongs to, if any."""
    for pattern in (_CANONICAL, _SUFFIXED, _PREFIXED):
        match = pattern.match(section_name.strip())
        if match:
            return match.group(1)
    return None


def extension_sections(doc: ConfigDocument, identifier: str) -> list[ConfigSection]:
    """Endpoint, auth and aor sections of *identifier*, under any naming.

    Templates are never part of an extension.
    """
    return [
        s
        for s in doc.sections
        if s.section_type in SECTION_TYPES
        and not s.is_template
        and owner_of(s.name) == identifier
    ]


def normalize_codecs(codecs: Any) -> tuple[str, ...]:
    """Lower-case, de-duplicated codec names in their original order.

    Accepts a sequence or a comma/pipe separated string.
    """
    if codecs is None:
        return ()
    if isinstance(codecs, str):
        codecs = re.split(r"[,|]", codecs)
    seen: dict[str, None] = {}
    for codec in codecs:
        name = str(codec).strip().lower()
        if name and name != "all":
            seen.setdefault(name, None)
    return tuple(seen)


def parse_callerid(value: str | None) -> tuple[str | None, str | None]:
    """Split ``"Name" <number>`` into its parts."""
    if not value:
        return (None, None)
    match = _CALLERID.match(value)
    if not match:
        return (value.strip().strip('"') or None, None)
    return (match.group("name").strip() or None, match.group("number").strip() or None)


def effective_name(record: ExtensionRecord) -> str:
    """Display name the engine will report for *record*."""
    if record.caller_id:
        name, _ = parse_callerid(record.caller_id)
        return name or ""
    return record.name


def callerid_for(record: ExtensionRecord) -> str | None:
    if record.caller_id:
        return record.caller_id
    if record.name:
        return f'"{record.name}" <{record.identifier}>'
    return None


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


# ---------------------------------------------------------------------------
# Record -> config sections
# ---------------------------------------------------------------------------


def record_to_sections(record: ExtensionRecord) -> list[tuple[str, dict[str, Any]]]:
    """Build the (section_type, attributes) pairs for an enabled record."""
    identifier = record.identifier
    context = record.context or DEFAULT_CONTEXT

    endpoint: dict[str, Any] = {
        "context": context,
        "disallow": "all",
        "allow": list(normalize_codecs(record.codecs)),
        "transport": record.transport or DEFAULT_TRANSPORT,
        "auth": identifier,
        "aors": identifier,
        "direct_media": _yes_no(record.direct_media),
        "callerid": callerid_for(record),
        "mailboxes": f"{identifier}@default" if record.voicemail_enabled else None,
        "subscribe_context": context,
        "device_state_busy_at": 1,
    }
    auth = {
        "auth_type": "userpass",
        "username": identifier,
        "password": record.secret,
    }
    aor = {
        "max_contacts": record.max_contacts,
        "remove_existing": "yes",
        "qualify_frequency": record.qualify_frequency,
        "support_outbound": "yes",
    }
    return [("endpoint", endpoint), ("auth", auth), ("aor", aor)]


def remove_extension(doc: ConfigDocument, identifier: str) -> ConfigDocument:
    """Drop every endpoint, auth and aor section of *identifier*."""
    for section in extension_sections(doc, identifier):
        doc = doc.without_section(section.section_type, section.name)
    return doc


def apply_record(doc: ConfigDocument, record: ExtensionRecord) -> ConfigDocument:
    """Make *doc* reflect *record*.

    Alternative-named sections are dropped and the canonical ``[id]``
    trio upserted. A disabled record is removed from the file entirely.
    """
    if not record.enabled:
        return remove_extension(doc, record.identifier)

    for section in extension_sections(doc, record.identifier):
        if section.name != record.identifier:
            doc = doc.without_section(section.section_type, section.name)

    for section_type, attributes in record_to_sections(record):
        doc = doc.with_section(section_type, record.identifier, attributes)
    return doc


def secret_from_document(doc: ConfigDocument, identifier: str) -> str | None:
    """Password of the auth section belonging to *identifier*, if any."""
    for section in extension_sections(doc, identifier):
        if section.section_type == "auth":
            password = section.get("password")
            if password:
                return password
    return None


# ---------------------------------------------------------------------------
# Live state
# ---------------------------------------------------------------------------


def live_state_from_detail(
    entry: dict[str, Any], detail: dict[str, Any]
) -> LiveEndpointState:
    """Combine an endpoint list entry and its detail into a live state."""
    identifier = str(entry["id"])
    state = str(entry.get("state") or "unknown").lower()
    callerid = detail.get("callerid")
    name, _ = parse_callerid(callerid)
    codecs = detail.get("codecs")
    return LiveEndpointState(
        identifier=identifier,
        name=name if callerid is not None else None,
        has_secret=detail.get("has_secret"),
        codecs=normalize_codecs(codecs) if codecs is not None else None,
        context=detail.get("context"),
        transport=detail.get("transport"),
        enabled=True,
        registered=state == "online",
        device_state=state,
        ip_address=detail.get("ip_address"),
        port=detail.get("port"),
        caller_id=callerid,
    )


def record_from_live(
    live: LiveEndpointState,
    existing: ExtensionRecord | None = None,
    secret: str | None = None,
) -> ExtensionRecord:
    """Map live fields onto a record update.

    Fields the engine did not report keep the existing record's value (or
    the defaults for a new record). The engine never exposes secrets, so
    the secret comes from *secret* (read from the config file) or stays
    as it was.
    """
    base = existing or ExtensionRecord(identifier=live.identifier)
    update: dict[str, Any] = {"enabled": True}
    if live.name is not None:
        update["name"] = live.name
        # caller id is rebuilt from the name unless it carried extra text
        if live.caller_id and live.caller_id != f'"{live.name}" <{live.identifier}>':
            update["caller_id"] = live.caller_id
        else:
            update["caller_id"] = None
    if live.codecs is not None:
        update["codecs"] = live.codecs
    if live.context is not None:
        update["context"] = live.context
    if live.transport is not None:
        update["transport"] = live.transport
    if live.has_secret is False:
        update["secret"] = ""
    elif secret:
        update["secret"] = secret
    return base.model_copy(update=update)
