"""Parsing, patching and atomic writing of engine configuration files."""

from .document import ConfigDocument, ConfigSection, parse_bytes, parse_text
from .store import ConfigStore

__all__ = [
    "ConfigDocument",
    "ConfigSection",
    "ConfigStore",
    "parse_bytes",
    "parse_text",
]
