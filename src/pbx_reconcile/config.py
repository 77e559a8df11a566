"""Runtime configuration for the reconciliation engine.

Reads engine, database and file settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PBX_ARI_URL: Asterisk REST Interface base URL (default: http://localhost:8088)
    PBX_ARI_USERNAME: ARI user (required for engine operations)
    PBX_ARI_PASSWORD: ARI password (required for engine operations)
    PBX_INSECURE: Skip SSL verification (optional, default: false)
    PBX_ENGINE_TIMEOUT: Seconds before an engine call is abandoned (default: 10)
    PBX_MAX_PARALLEL_REQUESTS: Max concurrent engine/file operations (default: 4)
    PBX_DATABASE_URL: SQLAlchemy URL of the extension database
    PBX_PJSIP_CONFIG: Path of the PJSIP endpoint config file
    PBX_BACKUP_DIR: Directory for backups (default: beside each file)
    PBX_BACKUP_KEEP: Backups retained per file by cleanup (default: 5)
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_ARI_URL = "http://localhost:8088"
DEFAULT_DATABASE_URL = "sqlite:///pbx.db"
DEFAULT_PJSIP_CONFIG = "/etc/asterisk/pjsip.conf"
DEFAULT_MANAGED_FILES = (
    "/etc/asterisk/pjsip.conf",
    "/etc/asterisk/extensions.conf",
    "/etc/asterisk/manager.conf",
)


@dataclass
class Config:
    ari_url: str = DEFAULT_ARI_URL
    ari_username: str = ""
    ari_password: str = ""
    insecure: bool = False
    debug: bool = False
    engine_timeout: float = 10.0
    max_parallel_requests: int = 4
    database_url: str = DEFAULT_DATABASE_URL
    pjsip_config: str = DEFAULT_PJSIP_CONFIG
    managed_files: list[str] = field(
        default_factory=lambda: list(DEFAULT_MANAGED_FILES)
    )
    backup_dir: str | None = None
    backup_keep: int = 5
    backup_tag: str = "backup"
    max_reported_errors: int = 10


def validate_config(config: Config, require_engine: bool = True) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.
        require_engine: Also require ARI credentials. Backup-only callers
            pass False since they never talk to the engine.

    Raises:
        ValueError: If URL format is invalid, credentials are empty, or a
            numeric setting is out of range.
    """
    config.ari_url = config.ari_url.strip()

    if not config.ari_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid ARI URL '{config.ari_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.ari_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid ARI URL '{config.ari_url}': URL must include a hostname"
        )

    config.ari_url = config.ari_url.removesuffix("/")

    if require_engine:
        if not config.ari_username.strip():
            raise ValueError(
                "ARI username cannot be empty. Set PBX_ARI_USERNAME environment variable."
            )
        if not config.ari_password.strip():
            raise ValueError(
                "ARI password cannot be empty. Set PBX_ARI_PASSWORD environment variable."
            )

    if not (0 < config.engine_timeout <= 300):
        raise ValueError(
            f"Invalid engine timeout {config.engine_timeout}: must be between 0 and 300 seconds"
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: "
            "must be a number between 1 and 100"
        )

    if config.backup_keep < 0:
        raise ValueError(
            f"Invalid backup keep count {config.backup_keep}: must not be negative"
        )

    if not config.backup_tag or "." in config.backup_tag or "/" in config.backup_tag:
        raise ValueError(
            f"Invalid backup tag '{config.backup_tag}': must be a non-empty word without '.' or '/'"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, kind: type, low: float, high: float):
    """Parse a numeric env var, or return None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = kind(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    database_url: str | None = None,
    pjsip_config: str | None = None,
    backup_dir: str | None = None,
    yaml_fallbacks: dict | None = None,
    require_engine: bool = True,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override ARI URL.
        username: Override ARI username.
        password: Override ARI password.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        database_url: Override SQLAlchemy database URL.
        pjsip_config: Override the PJSIP config file path.
        backup_dir: Override the backup directory.
        yaml_fallbacks: Flattened values from the YAML config (see
            ``config_schema.to_fallbacks``). Used when CLI arg and env var
            are both unset.
        require_engine: Passed through to ``validate_config``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed or required engine credentials
            are missing after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    ari_url = url or os.getenv("PBX_ARI_URL") or fb.get("ari_url") or DEFAULT_ARI_URL
    ari_username = (
        username or os.getenv("PBX_ARI_USERNAME") or fb.get("ari_username") or ""
    ).strip()
    ari_password = (
        password or os.getenv("PBX_ARI_PASSWORD") or fb.get("ari_password") or ""
    ).strip()

    final_database_url = (
        database_url
        or os.getenv("PBX_DATABASE_URL")
        or fb.get("database_url")
        or DEFAULT_DATABASE_URL
    )
    final_pjsip_config = (
        pjsip_config
        or os.getenv("PBX_PJSIP_CONFIG")
        or fb.get("pjsip_config")
        or DEFAULT_PJSIP_CONFIG
    )
    final_backup_dir = (
        backup_dir or os.getenv("PBX_BACKUP_DIR") or fb.get("backup_dir") or None
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("PBX_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("PBX_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout = _get_number_env("PBX_ENGINE_TIMEOUT", float, 0.1, 300)
    if timeout is None:
        timeout = float(fb.get("engine_timeout", 10.0))

    max_parallel = _get_number_env("PBX_MAX_PARALLEL_REQUESTS", int, 1, 100)
    if max_parallel is None:
        max_parallel = int(fb.get("max_parallel_requests", 4))

    keep = _get_number_env("PBX_BACKUP_KEEP", int, 0, 10000)
    if keep is None:
        keep = int(fb.get("backup_keep", 5))

    managed_files = list(fb.get("managed_files") or DEFAULT_MANAGED_FILES)
    if final_pjsip_config not in managed_files:
        managed_files.insert(0, final_pjsip_config)

    config = Config(
        ari_url=ari_url,
        ari_username=ari_username,
        ari_password=ari_password,
        insecure=final_insecure,
        debug=final_debug,
        engine_timeout=timeout,
        max_parallel_requests=max_parallel,
        database_url=final_database_url,
        pjsip_config=final_pjsip_config,
        managed_files=managed_files,
        backup_dir=final_backup_dir,
        backup_keep=keep,
        backup_tag=fb.get("backup_tag", "backup"),
        max_reported_errors=int(fb.get("max_reported_errors", 10)),
    )

    validate_config(config, require_engine=require_engine)

    return config
