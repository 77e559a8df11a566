"""Unified configuration schema for pbx_reconcile.

Defines Pydantic models for the YAML config structure with dedicated
sections for the engine connection, managed files, backups, the record
database, sync reporting and logging. Includes an adapter that flattens
the sections into the fallback dict consumed by ``config.load_config``.

Usage:
    from pbx_reconcile.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Asterisk REST Interface connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="ARI base URL")
    username: str | None = Field(default=None, description="ARI username")
    password: str | None = Field(default=None, description="ARI password")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Seconds before an engine call is abandoned",
    )
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=100,
        description="Maximum concurrent engine/file operations (1-100)",
    )

    model_config = {"frozen": True}


class FilesConfig(BaseModel):
    """Engine configuration files.

    Attributes:
        pjsip: Endpoint config file written by record-to-live sync.
        managed: Files covered by bulk backup, cleanup and status.
    """

    pjsip: str | None = Field(default=None, description="PJSIP config path")
    managed: list[str] = Field(
        default_factory=list, description="Files covered by bulk backups"
    )

    model_config = {"frozen": True}


class BackupConfig(BaseModel):
    """Backup placement and retention."""

    dir: str | None = Field(
        default=None, description="Backup directory (default: beside file)"
    )
    keep: int = Field(
        default=5, ge=0, le=10000, description="Backups kept by cleanup"
    )
    tag: str = Field(
        default="backup",
        pattern=r"^[A-Za-z0-9_-]+$",
        description="Domain tag in backup file names",
    )

    model_config = {"frozen": True}


class DatabaseConfig(BaseModel):
    """Extension record database."""

    url: str | None = Field(default=None, description="SQLAlchemy URL")

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync reporting settings."""

    max_reported_errors: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Error details kept in an operation report",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    engine: EngineConfig = Field(default_factory=EngineConfig)
    files: FilesConfig = Field(default_factory=FilesConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.

    Raises:
        pydantic.ValidationError: If a section has the wrong shape.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config(yaml_fallbacks=...)``.

    Unset optional values are left out so env vars and built-in defaults
    still apply.
    """
    fb: dict[str, Any] = {
        "ari_url": unified.engine.url,
        "ari_username": unified.engine.username,
        "ari_password": unified.engine.password,
        "insecure": unified.engine.insecure,
        "debug": unified.engine.debug,
        "engine_timeout": unified.engine.timeout,
        "max_parallel_requests": unified.engine.max_parallel_requests,
        "database_url": unified.database.url,
        "pjsip_config": unified.files.pjsip,
        "managed_files": list(unified.files.managed),
        "backup_dir": unified.backup.dir,
        "backup_keep": unified.backup.keep,
        "backup_tag": unified.backup.tag,
        "max_reported_errors": unified.sync.max_reported_errors,
    }
    return {k: v for k, v in fb.items() if v is not None and v != []}
