"""Section-based configuration documents.

Parses the engine's INI-like configuration text into immutable
``ConfigDocument`` values and serialises them back. Each section keeps the
raw lines it was parsed from, so any section that is not replaced is
written back byte for byte, including comments, odd spacing and the
file's newline style.

Format accepted:

    ; comment            # comment
    [101]                section header
    [base](!)            template header
    [101](base)          section inheriting from a template
    type=endpoint        key=value
    exten => 100,1,Noop  key => value
    password=ab\\;cd    escaped semicolon, value "ab;cd"
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from ..errors import ParseError, WriteError
from ..fileio import content_hash, decode_config_bytes

# [name] optionally followed by a template suffix like (!) or (!,base)
_HEADER = re.compile(
    r"^\s*\[(?P<name>[^\[\]]+)\](?P<template>\([^)]*\))?\s*(?:[;#].*)?$"
)
_ATTRIBUTE = re.compile(r"^\s*(?P<key>[^\s=;#\[][^=]*?)\s*=>?\s*(?P<value>.*)$")
# An unescaped ';' starts an inline comment
_INLINE_COMMENT = re.compile(r"(?<!\\);.*$")
_LINE_BREAK = re.compile(r"[\r\n]")


def _is_filler(line: str) -> bool:
    """True for blank and comment lines."""
    stripped = line.strip()
    return not stripped or stripped[0] in ";#"


def _strip_newline(line: str) -> str:
    return line.rstrip("\r\n")


def _escape(value: str) -> str:
    return value.replace(";", "\\;")


def _unescape(value: str) -> str:
    return value.replace("\\;", ";")


def _single_line(what: str, text: str, section: str) -> str:
    """Return *text*, refusing anything that would start a new line."""
    if _LINE_BREAK.search(text):
        raise WriteError(f"Line break in {what} of section [{section}]: {text!r}")
    return text


def template_parents(template: str) -> list[str]:
    """Names a header suffix such as ``(!,base)`` inherits from."""
    names = template.strip("()").split(",")
    return [n.strip() for n in names if n.strip() and n.strip() != "!"]


@dataclass(frozen=True)
class ConfigSection:
    """One ``[name]`` block.

    Attributes:
        name: Section name (shared by endpoint, auth and aor of one extension).
        section_type: Value of the ``type=`` key, or the type inherited from
            a template when the section has none of its own. ``""`` if
            neither applies.
        attributes: Ordered ``(key, value)`` pairs; repeated keys are legal.
        lines: Raw source lines, header included, newlines kept.
        trailer: Blank and comment lines after the last attribute. They are
            kept when the section is replaced.
        template: Header suffix such as ``(!)``, ``""`` if none.
    """

    name: str
    section_type: str = ""
    attributes: tuple[tuple[str, str], ...] = ()
    lines: tuple[str, ...] = ()
    trailer: tuple[str, ...] = ()
    template: str = ""

    @property
    def is_template(self) -> bool:
        return "!" in self.template

    @property
    def identity(self) -> tuple[str, str]:
        return (self.section_type, self.name)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the last value of *key* (later lines win)."""
        for k, v in reversed(self.attributes):
            if k == key:
                return v
        return default

    def get_all(self, key: str) -> list[str]:
        """Return every value of a repeatable key such as ``allow``."""
        return [v for k, v in self.attributes if k == key]

    def render(self) -> str:
        return "".join(self.lines) + "".join(self.trailer)

    @classmethod
    def build(
        cls,
        section_type: str,
        name: str,
        attributes: Mapping[str, Any],
        newline: str = "\n",
        template: str = "",
        trailer: tuple[str, ...] | None = None,
    ) -> ConfigSection:
        """Build a freshly rendered section.

        ``type=`` is emitted first when *section_type* is set. Remaining keys
        follow the mapping's insertion order; list and tuple values expand
        to one line per item; ``None`` values are skipped. A ``;`` in a
        value is written as ``\\;`` so it is not read back as a comment.

        Raises:
            WriteError: If the name, a key or a value contains CR or LF.
        """
        pairs: list[tuple[str, str]] = []
        if section_type:
            pairs.append(("type", section_type))
        for key, value in attributes.items():
            if key == "type" or value is None:
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((key, str(item)) for item in value)
            else:
                pairs.append((key, str(value)))

        _single_line("name", name + template, name)
        for key, value in pairs:
            _single_line("key", key, name)
            _single_line(f"value of {key}", value, name)

        lines = [f"[{name}]{template}{newline}"]
        lines.extend(f"{k}={_escape(v)}{newline}" for k, v in pairs)
        return cls(
            name=name,
            section_type=section_type,
            attributes=tuple(pairs),
            lines=tuple(lines),
            trailer=(newline,) if trailer is None else trailer,
            template=template,
        )


@dataclass(frozen=True)
class ConfigDocument:
    """An immutable parsed configuration file.

    Mutating operations return a new document; sections that were not
    targeted are carried over unchanged.

    Attributes:
        path: File the document was loaded from, if any.
        preamble: Lines before the first section header.
        sections: Sections in file order.
        encoding: Encoding used to decode and re-encode the file.
        newline: Newline style for newly rendered lines.
        source_hash: SHA-256 of the bytes parsed, ``None`` if the file did
            not exist. ``ConfigStore.write`` uses it to detect conflicts.
    """

    path: Path | None = None
    preamble: tuple[str, ...] = ()
    sections: tuple[ConfigSection, ...] = ()
    encoding: str = "utf-8"
    newline: str = "\n"
    source_hash: str | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find(self, section_type: str, name: str) -> ConfigSection | None:
        for section in self.sections:
            if section.section_type == section_type and section.name == name:
                return section
        return None

    def named(self, name: str) -> list[ConfigSection]:
        """All sections called *name*, whatever their type."""
        return [s for s in self.sections if s.name == name]

    def of_type(self, section_type: str) -> list[ConfigSection]:
        return [s for s in self.sections if s.section_type == section_type]

    # ------------------------------------------------------------------
    # Transformations
    # ------------------------------------------------------------------

    def with_section(
        self,
        section_type: str,
        name: str,
        attributes: Mapping[str, Any],
    ) -> ConfigDocument:
        """Return a copy with the (type, name) section replaced or appended.

        A replaced section keeps its template suffix, so inherited settings
        still apply. Templates are never replaced.
        """
        existing_index = None
        for index, section in enumerate(self.sections):
            if (
                section.section_type == section_type
                and section.name == name
                and not section.is_template
            ):
                existing_index = index
                break

        if existing_index is not None:
            old = self.sections[existing_index]
            new_section = ConfigSection.build(
                section_type,
                name,
                attributes,
                newline=self.newline,
                template=old.template,
                trailer=old.trailer,
            )
            sections = list(self.sections)
            sections[existing_index] = new_section
            return replace(self, sections=tuple(sections))

        new_section = ConfigSection.build(
            section_type, name, attributes, newline=self.newline
        )
        doc = self._terminated()
        return replace(doc, sections=doc.sections + (new_section,))

    def without_section(self, section_type: str, name: str) -> ConfigDocument:
        """Return a copy with every (type, name) section removed.

        Templates of that name are left alone.

        A comment in the removed section's trailer is kept, since it usually
        describes whatever follows.
        """
        preamble = self.preamble
        kept: list[ConfigSection] = []
        changed = False
        for section in self.sections:
            if (
                section.section_type != section_type
                or section.name != name
                or section.is_template
            ):
                kept.append(section)
                continue
            changed = True
            if not any(line.strip() for line in section.trailer):
                continue
            if kept:
                last = kept[-1]
                kept[-1] = replace(last, trailer=last.trailer + section.trailer)
            else:
                preamble = preamble + section.trailer

        if not changed:
            return self
        return replace(self, preamble=preamble, sections=tuple(kept))

    def _terminated(self) -> ConfigDocument:
        """Make sure the last line ends with a newline before appending."""
        if self.sections:
            last = self.sections[-1]
            if last.trailer:
                if not last.trailer[-1].endswith(("\n", "\r")):
                    trailer = last.trailer[:-1] + (last.trailer[-1] + self.newline,)
                    return replace(
                        self,
                        sections=self.sections[:-1] + (replace(last, trailer=trailer),),
                    )
                return self
            if last.lines and not last.lines[-1].endswith(("\n", "\r")):
                lines = last.lines[:-1] + (last.lines[-1] + self.newline,)
                return replace(
                    self,
                    sections=self.sections[:-1] + (replace(last, lines=lines),),
                )
            return self
        if self.preamble and not self.preamble[-1].endswith(("\n", "\r")):
            preamble = self.preamble[:-1] + (self.preamble[-1] + self.newline,)
            return replace(self, preamble=preamble)
        return self

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        return "".join(self.preamble) + "".join(s.render() for s in self.sections)

    def to_bytes(self) -> bytes:
        return self.serialize().encode(self.encoding)


def _split_body(body: list[str]) -> tuple[list[str], list[str]]:
    """Split section body lines into content and trailing filler."""
    end = len(body)
    while end > 0 and _is_filler(body[end - 1]):
        end -= 1
    return body[:end], body[end:]


def _parse_attribute(line: str) -> tuple[str, str] | None:
    match = _ATTRIBUTE.match(_strip_newline(line))
    if not match:
        return None
    value = _INLINE_COMMENT.sub("", match.group("value")).strip()
    return match.group("key").strip(), _unescape(value)


def _make_section(
    name: str,
    template: str,
    header: str,
    body: list[str],
) -> ConfigSection:
    content, trailer = _split_body(body)
    attributes: list[tuple[str, str]] = []
    for line in content:
        if _is_filler(line):
            continue
        pair = _parse_attribute(line)
        if pair is not None:
            attributes.append(pair)
    section_type = ""
    for key, value in attributes:
        if key == "type":
            section_type = value
    return ConfigSection(
        name=name,
        section_type=section_type,
        attributes=tuple(attributes),
        lines=(header, *content),
        trailer=tuple(trailer),
        template=template,
    )


def _inherit_types(sections: list[ConfigSection]) -> tuple[ConfigSection, ...]:
    """Give sections without ``type=`` the type of the template they use.

    A parent must appear earlier in the file; the nearest earlier section
    of that name is used, so chains of templates resolve in one pass.
    """
    known: dict[str, str] = {}
    resolved: list[ConfigSection] = []
    for section in sections:
        if not section.section_type:
            for parent in template_parents(section.template):
                inherited = known.get(parent)
                if inherited:
                    section = replace(section, section_type=inherited)
                    break
        if section.section_type:
            known[section.name] = section.section_type
        resolved.append(section)
    return tuple(resolved)


def parse_text(
    text: str,
    path: Path | None = None,
    encoding: str = "utf-8",
    source_hash: str | None = None,
) -> ConfigDocument:
    """Parse configuration text into a ``ConfigDocument``.

    Lines that are neither comments, headers, nor ``key=value`` pairs are
    kept verbatim but contribute no attribute.

    Raises:
        ParseError: On a malformed section header, with its line number.
    """
    lines = text.splitlines(keepends=True)
    newline = "\r\n" if "\r\n" in text else "\n"
    where = str(path) if path else None

    preamble: list[str] = []
    sections: list[ConfigSection] = []
    current: tuple[str, str, str] | None = None
    body: list[str] = []

    for number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if stripped.startswith("["):
            match = _HEADER.match(_strip_newline(line))
            if not match or not match.group("name").strip():
                raise ParseError(
                    f"Malformed section header: {stripped!r}",
                    path=where,
                    line_number=number,
                )
            if current is not None:
                sections.append(_make_section(*current, body))
            current = (
                match.group("name").strip(),
                match.group("template") or "",
                line,
            )
            body = []
        elif current is None:
            preamble.append(line)
        else:
            body.append(line)

    if current is not None:
        sections.append(_make_section(*current, body))

    return ConfigDocument(
        path=path,
        preamble=tuple(preamble),
        sections=_inherit_types(sections),
        encoding=encoding,
        newline=newline,
        source_hash=source_hash,
    )


def parse_bytes(raw: bytes, path: Path | None = None) -> ConfigDocument:
    """Decode and parse file content, recording its hash and encoding."""
    text, encoding = decode_config_bytes(raw)
    return parse_text(
        text, path=path, encoding=encoding, source_hash=content_hash(raw)
    )


def empty_document(path: Path | None = None) -> ConfigDocument:
    """Document for a file that does not exist yet."""
    return ConfigDocument(path=path, source_hash=None)
