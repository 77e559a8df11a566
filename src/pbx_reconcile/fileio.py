"""File I/O primitives: content hashing, encoding detection, atomic writes.

Shared by ``ConfigStore`` and ``BackupStore``. Every write to a file the
engine reads goes through ``atomic_write_bytes()`` so no reader ever sees
partially written content.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from .errors import WriteError

logger = logging.getLogger(__name__)

_UTF8_BOM = b"\xef\xbb\xbf"


def content_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest of *data*.

    Unlike text-level hashing, no normalisation is applied: two files hash
    equal only when they are byte-identical.
    """
    return hashlib.sha256(data).hexdigest()


def file_hash(path: Path) -> str | None:
    """Return the content hash of *path*, or ``None`` if it does not exist."""
    try:
        return content_hash(path.read_bytes())
    except FileNotFoundError:
        return None


def decode_config_bytes(raw: bytes) -> tuple[str, str]:
    """Decode configuration file bytes, detecting the encoding.

    UTF-8 is tried first (with BOM awareness) since nearly every engine
    config file is UTF-8 or ASCII. Anything else goes through
    charset-normalizer. The returned encoding round-trips: encoding the
    returned text with it yields *raw* again.

    Args:
        raw: File content.

    Returns:
        Tuple of (text, encoding).
    """
    if not raw:
        return ("", "utf-8")

    if raw.startswith(_UTF8_BOM):
        return (raw.decode("utf-8-sig"), "utf-8-sig")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        # latin-1 maps every byte, so the round trip stays exact
        logger.warning("Encoding detection failed, falling back to latin-1")
        return (raw.decode("latin-1"), "latin-1")
    return (str(result), result.encoding)


def atomic_write_bytes(target: Path, data: bytes, mode: int | None = None) -> None:
    """Write *data* to *target* atomically.

    Writes a temporary file in the target's directory, fsyncs it, then
    ``os.replace()``s it over the target. On any failure the temporary
    file is removed and the target is left exactly as it was.

    Args:
        target: Destination path.
        data: Bytes to write.
        mode: Permission bits for the new file. Defaults to the existing
            target's mode, or 0o644 for a new file.

    Raises:
        WriteError: If the directory is not writable or the rename fails.
    """
    directory = target.parent
    if mode is None:
        try:
            mode = target.stat().st_mode & 0o777
        except FileNotFoundError:
            mode = 0o644

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(directory), prefix=f".{target.name}.", suffix=".tmp"
        )
    except OSError as exc:
        raise WriteError(
            f"Cannot create temporary file in {directory}: {exc}"
        ) from exc

    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except OSError as exc:
        _discard(tmp_path)
        raise WriteError(f"Failed to write {target}: {exc}") from exc
    except BaseException:
        _discard(tmp_path)
        raise


def _discard(tmp_path: str) -> None:
    try:
        os.unlink(tmp_path)
    except OSError:
        pass
