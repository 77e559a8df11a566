"""Content-deduplicated, timestamped backups of engine configuration files.

A backup is a byte copy named ``<file name>.<tag>.<YYYYmmdd_HHMMSS>``,
with a ``_NNN`` counter appended when more than one backup of the same
file is taken within one second. Backups live in the configured backup
directory, or beside the original file when none is set.

A new copy is only made when the file's SHA-256 differs from the newest
existing backup, so repeated no-op writes collapse into a single backup
while every distinct state is still captured. ``cleanup`` bounds growth.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from ..core.locks import KeyedLock
from ..errors import NotFoundError, WriteError
from ..fileio import atomic_write_bytes, content_hash

logger = logging.getLogger(__name__)

_STAMP_FORMAT = "%Y%m%d_%H%M%S"


class BackupEntry(BaseModel):
    """One backup file.

    Attributes:
        backup_id: Backup file name, used to address it for restore.
        source_path: File that was backed up.
        backup_path: Location of the copy.
        content_hash: SHA-256 of the copy's bytes.
        created_at: Creation time encoded in the file name.
    """

    backup_id: str
    source_path: str
    backup_path: str
    content_hash: str
    created_at: datetime

    model_config = {"frozen": True}


class BackupStatus(BaseModel):
    """Backup summary for one managed file."""

    path: str
    exists: bool
    backup_count: int
    latest: BackupEntry | None = None

    model_config = {"frozen": True}


class BackupStore:
    """Create, list, restore and prune backups of configuration files.

    Args:
        backup_dir: Directory holding backups. ``None`` keeps each backup
            next to its original file.
        tag: Domain tag embedded in backup names.
        locks: Per-path lock registry shared with ``ConfigStore`` so a
            backup or restore never interleaves with a write of the same
            file.
        clock: Returns the current time; replaced in tests.
    """

    def __init__(
        self,
        backup_dir: Path | str | None = None,
        tag: str = "backup",
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.backup_dir = Path(backup_dir) if backup_dir else None
        self.tag = tag
        self.locks = locks or KeyedLock()
        self._clock = clock
        self._id_pattern = re.compile(
            rf"^(?P<source>.+)\.{re.escape(tag)}\."
            r"(?P<stamp>\d{8}_\d{6})(?:_(?P<counter>\d{3,}))?$"
        )

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def directory_for(self, path: Path) -> Path:
        return self.backup_dir if self.backup_dir else path.parent

    def _parse_id(self, backup_id: str) -> tuple[str, datetime, int] | None:
        match = self._id_pattern.match(backup_id)
        if not match:
            return None
        try:
            created = datetime.strptime(match.group("stamp"), _STAMP_FORMAT)
        except ValueError:
            return None
        return match.group("source"), created, int(match.group("counter") or 0)

    def _entry(self, source: Path, backup_path: Path) -> BackupEntry:
        """Describe one backup file.

        Raises:
            NotFoundError: If the name is not a backup name or the file
                disappeared before it could be hashed.
            WriteError: If the file exists but cannot be read.
        """
        parsed = self._parse_id(backup_path.name)
        if parsed is None:
            raise NotFoundError(f"Unknown backup id: {backup_path.name}")
        try:
            data = backup_path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"Backup {backup_path} no longer exists") from None
        except OSError as e:
            raise WriteError(f"Cannot read backup {backup_path}: {e}") from e
        return BackupEntry(
            backup_id=backup_path.name,
            source_path=str(source),
            backup_path=str(backup_path),
            content_hash=content_hash(data),
            created_at=parsed[1],
        )

    def _entries(self, path: Path, limit: int | None = None) -> list[BackupEntry]:
        """Entries for the backups of *path*, newest first.

        Backups deleted between the directory scan and hashing are skipped.
        """
        entries: list[BackupEntry] = []
        with self.locks.hold(lock_key(path)):
            for _, _, backup_path in self._scan(path):
                try:
                    entries.append(self._entry(path, backup_path))
                except NotFoundError:
                    logger.debug("Backup %s vanished during scan", backup_path)
                    continue
                if limit is not None and len(entries) >= limit:
                    break
        return entries

    def _scan(self, path: Path) -> list[tuple[datetime, int, Path]]:
        """Backups of *path* as (created, counter, file), newest first."""
        directory = self.directory_for(path)
        if not directory.is_dir():
            return []
        found = []
        for candidate in directory.glob(f"{glob_escape(path.name)}.{self.tag}.*"):
            parsed = self._parse_id(candidate.name)
            if parsed is None or parsed[0] != path.name or not candidate.is_file():
                continue
            found.append((parsed[1], parsed[2], candidate))
        found.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return found

    def _next_name(self, path: Path) -> str:
        stamp = self._clock().replace(microsecond=0)
        same_second = [
            counter for created, counter, _ in self._scan(path) if created == stamp
        ]
        name = f"{path.name}.{self.tag}.{stamp.strftime(_STAMP_FORMAT)}"
        if same_second:
            name += f"_{max(same_second) + 1:03d}"
        return name

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def list(self, path: Path | str) -> list[BackupEntry]:
        """Return the backups of *path*, newest first."""
        return self._entries(Path(path))

    def latest(self, path: Path | str) -> BackupEntry | None:
        """Return the newest backup of *path*, or ``None``."""
        newest = self._entries(Path(path), limit=1)
        return newest[0] if newest else None

    def backup(self, path: Path | str, force: bool = False) -> BackupEntry | None:
        """Back up *path* unless its newest backup already has this content.

        Args:
            path: File to back up.
            force: Copy even when the content matches the newest backup.

        Returns:
            The new entry, the existing newest entry when content is
            unchanged, or ``None`` when *path* does not exist.

        Raises:
            WriteError: If the file cannot be read or the copy written.
        """
        path = Path(path)
        with self.locks.hold(lock_key(path)):
            try:
                raw = path.read_bytes()
            except FileNotFoundError:
                logger.debug("Nothing to back up, %s does not exist", path)
                return None
            except OSError as e:
                raise WriteError(f"Cannot read {path} for backup: {e}") from e

            digest = content_hash(raw)
            if not force:
                newest = self.latest(path)
                if newest is not None and newest.content_hash == digest:
                    logger.debug(
                        "Backup of %s unchanged, reusing %s",
                        path,
                        newest.backup_id,
                    )
                    return newest

            directory = self.directory_for(path)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WriteError(
                    f"Cannot create backup directory {directory}: {e}"
                ) from e

            target = directory / self._next_name(path)
            atomic_write_bytes(target, raw, mode=0o600)
            logger.info("Backed up %s to %s", path, target)
            return self._entry(path, target)

    def restore(self, backup_id: str, target_path: Path | str) -> BackupEntry:
        """Atomically replace *target_path* with a backup's content.

        The current target content is backed up first (deduplicated), so a
        restore can itself be undone.

        Raises:
            NotFoundError: If *backup_id* does not name a backup.
            WriteError: If the target cannot be written.
        """
        target = Path(target_path)
        if "/" in backup_id or "\\" in backup_id or self._parse_id(backup_id) is None:
            raise NotFoundError(f"Unknown backup id: {backup_id}")

        backup_path = self.directory_for(target) / backup_id
        with self.locks.hold(lock_key(target)):
            try:
                data = backup_path.read_bytes()
            except FileNotFoundError:
                raise NotFoundError(f"Unknown backup id: {backup_id}") from None
            except OSError as e:
                raise WriteError(f"Cannot read backup {backup_path}: {e}") from e

            self.backup(target)
            atomic_write_bytes(target, data)
            logger.info("Restored %s from %s", target, backup_id)

        return BackupEntry(
            backup_id=backup_id,
            source_path=str(target),
            backup_path=str(backup_path),
            content_hash=content_hash(data),
            created_at=self._parse_id(backup_id)[1],
        )

    def cleanup(self, path: Path | str, keep: int) -> list[BackupEntry]:
        """Delete all but the *keep* newest backups of *path*.

        The active file is never touched. Running twice with the same
        *keep* deletes nothing the second time.

        Returns:
            Entries that were deleted.

        Raises:
            ValueError: If *keep* is negative.
            WriteError: If a backup cannot be deleted.
        """
        if keep < 0:
            raise ValueError(f"keep must not be negative, got {keep}")
        path = Path(path)
        active = path.resolve()
        deleted: list[BackupEntry] = []
        with self.locks.hold(lock_key(path)):
            for _, _, backup_path in self._scan(path)[keep:]:
                if backup_path.resolve() == active:
                    continue
                try:
                    entry = self._entry(path, backup_path)
                except NotFoundError:
                    continue
                try:
                    backup_path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise WriteError(
                        f"Cannot delete backup {backup_path}: {e}"
                    ) from e
                deleted.append(entry)
        if deleted:
            logger.info(
                "Removed %d old backup(s) of %s, kept %d", len(deleted), path, keep
            )
        return deleted

    def status(self, paths: Iterable[Path | str]) -> list[BackupStatus]:
        """Summarise backups for each of *paths*."""
        result = []
        for raw_path in paths:
            path = Path(raw_path)
            entries = self._entries(path)
            result.append(
                BackupStatus(
                    path=str(path),
                    exists=path.exists(),
                    backup_count=len(entries),
                    latest=entries[0] if entries else None,
                )
            )
        return result


def lock_key(path: Path) -> str:
    """Key under which writes to *path* are serialised."""
    return str(path.resolve())


def glob_escape(name: str) -> str:
    return re.sub(r"([*?\[])", r"[\1]", name)
