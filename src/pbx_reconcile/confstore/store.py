"""Load, patch and safely write engine configuration files.

``ConfigStore`` is the only component that writes configuration files.
A write is refused when the file changed since the document was loaded,
backs the current content up first, and replaces the file atomically.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..backup.store import BackupStore, lock_key
from ..core.locks import KeyedLock
from ..errors import ConflictError, ParseError, WriteError
from ..fileio import atomic_write_bytes, content_hash, file_hash
from .document import ConfigDocument, empty_document, parse_bytes

logger = logging.getLogger(__name__)


class ConfigStore:
    """Read-modify-write access to section-based configuration files.

    Args:
        backups: Backup store invoked before every destructive write.
        locks: Per-path lock registry, shared with *backups*.
    """

    def __init__(
        self,
        backups: BackupStore,
        locks: KeyedLock | None = None,
    ) -> None:
        self.backups = backups
        self.locks = locks or backups.locks

    def load(self, path: Path | str) -> ConfigDocument:
        """Parse *path*. A missing file loads as an empty document.

        Raises:
            ParseError: On a malformed section header or unreadable file.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug("%s does not exist, starting empty", path)
            return empty_document(path)
        except OSError as e:
            raise ParseError(f"Cannot read file: {e}", path=str(path)) from e
        return parse_bytes(raw, path=path)

    @staticmethod
    def upsert_section(
        doc: ConfigDocument,
        section_type: str,
        section_name: str,
        attributes: Mapping[str, Any],
    ) -> ConfigDocument:
        """Replace the (type, name) section in place, or append it."""
        return doc.with_section(section_type, section_name, attributes)

    @staticmethod
    def remove_section(
        doc: ConfigDocument, section_type: str, section_name: str
    ) -> ConfigDocument:
        """Drop the (type, name) section; no-op when absent."""
        return doc.without_section(section_type, section_name)

    def write(self, path: Path | str, doc: ConfigDocument) -> ConfigDocument:
        """Write *doc* to *path* atomically, backing up the current file.

        Returns:
            The document as now on disk (``source_hash`` updated). When the
            serialised content equals the file's, nothing is written and the
            document is returned unchanged.

        Raises:
            ConflictError: The file changed since *doc* was loaded.
            WriteError: The directory is not writable or the rename failed;
                the original file is untouched.
        """
        path = Path(path)
        with self.locks.hold(lock_key(path)):
            current = file_hash(path)
            if current != doc.source_hash:
                raise ConflictError(
                    f"{path} changed since it was loaded; reload and retry"
                )

            try:
                data = doc.to_bytes()
            except UnicodeEncodeError as e:
                raise WriteError(
                    f"Cannot encode {path} as {doc.encoding}: {e}"
                ) from e

            new_hash = content_hash(data)
            if new_hash == current:
                logger.debug("%s unchanged, skipping write", path)
                return doc

            self.backups.backup(path)
            atomic_write_bytes(path, data)
            logger.info("Wrote %s (%d bytes)", path, len(data))
            return replace(doc, path=path, source_hash=new_hash)

    def modify(
        self,
        path: Path | str,
        change: Callable[[ConfigDocument], ConfigDocument],
    ) -> bool:
        """Load, transform and write *path* under its lock.

        Returns:
            True if the file content changed.
        """
        path = Path(path)
        with self.locks.hold(lock_key(path)):
            doc = self.load(path)
            written = self.write(path, change(doc))
            return written.source_hash != doc.source_hash
