"""Deduplicated, timestamped backups of configuration files."""

from .store import BackupEntry, BackupStatus, BackupStore

__all__ = ["BackupEntry", "BackupStatus", "BackupStore"]
