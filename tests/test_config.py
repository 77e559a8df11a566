"""Tests for pbx_reconcile.config: env-var config loading and validation.

Hierarchical YAML loading lives in test_config_loader.py and the
Pydantic section models in test_config_schema.py.
"""

import logging

import pytest

from pbx_reconcile.config import (
    DEFAULT_MANAGED_FILES,
    Config,
    load_config,
    validate_config,
)

_ENV_VARS = (
    "PBX_ARI_URL",
    "PBX_ARI_USERNAME",
    "PBX_ARI_PASSWORD",
    "PBX_INSECURE",
    "PBX_DEBUG",
    "PBX_ENGINE_TIMEOUT",
    "PBX_MAX_PARALLEL_REQUESTS",
    "PBX_DATABASE_URL",
    "PBX_PJSIP_CONFIG",
    "PBX_BACKUP_DIR",
    "PBX_BACKUP_KEEP",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    def _config(self, **overrides):
        defaults = {"ari_username": "pbx", "ari_password": "secret"}
        defaults.update(overrides)
        return Config(**defaults)

    def test_valid_config(self):
        validate_config(self._config())

    def test_invalid_url_scheme(self):
        with pytest.raises(ValueError, match="must start with http:// or https://"):
            validate_config(self._config(ari_url="ftp://pbx.example.com"))

    def test_url_without_host(self):
        with pytest.raises(ValueError, match="hostname"):
            validate_config(self._config(ari_url="http://"))

    def test_trailing_slash_stripped(self):
        config = self._config(ari_url=" http://pbx:8088/ ")
        validate_config(config)
        assert config.ari_url == "http://pbx:8088"

    def test_missing_username(self):
        with pytest.raises(ValueError, match="PBX_ARI_USERNAME"):
            validate_config(self._config(ari_username=" "))

    def test_missing_password(self):
        with pytest.raises(ValueError, match="PBX_ARI_PASSWORD"):
            validate_config(self._config(ari_password=""))

    def test_credentials_optional_without_engine(self):
        validate_config(Config(), require_engine=False)

    @pytest.mark.parametrize("timeout", [0, -1, 301])
    def test_timeout_range(self, timeout):
        with pytest.raises(ValueError, match="engine timeout"):
            validate_config(self._config(engine_timeout=timeout))

    @pytest.mark.parametrize("value", [0, 101])
    def test_max_parallel_range(self, value):
        with pytest.raises(ValueError, match="max_parallel_requests"):
            validate_config(self._config(max_parallel_requests=value))

    def test_negative_keep(self):
        with pytest.raises(ValueError, match="keep count"):
            validate_config(self._config(backup_keep=-1))

    @pytest.mark.parametrize("tag", ["", "a.b", "a/b"])
    def test_bad_backup_tag(self, tag):
        with pytest.raises(ValueError, match="backup tag"):
            validate_config(self._config(backup_tag=tag))

    def test_insecure_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pbx_reconcile.config"):
            validate_config(self._config(insecure=True))
        assert "SSL verification disabled" in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PBX_ARI_URL", "https://pbx.example.com:8089")
        monkeypatch.setenv("PBX_ARI_USERNAME", "env-user")
        monkeypatch.setenv("PBX_ARI_PASSWORD", "env-pass")
        monkeypatch.setenv("PBX_INSECURE", "yes")
        monkeypatch.setenv("PBX_ENGINE_TIMEOUT", "2.5")
        monkeypatch.setenv("PBX_MAX_PARALLEL_REQUESTS", "8")
        monkeypatch.setenv("PBX_DATABASE_URL", "sqlite:///env.db")
        monkeypatch.setenv("PBX_BACKUP_DIR", "/var/backups/pbx")
        monkeypatch.setenv("PBX_BACKUP_KEEP", "3")

        config = load_config()

        assert config.ari_url == "https://pbx.example.com:8089"
        assert config.ari_username == "env-user"
        assert config.ari_password == "env-pass"
        assert config.insecure is True
        assert config.engine_timeout == 2.5
        assert config.max_parallel_requests == 8
        assert config.database_url == "sqlite:///env.db"
        assert config.backup_dir == "/var/backups/pbx"
        assert config.backup_keep == 3

    def test_defaults(self):
        config = load_config(username="u", password="p")
        assert config.ari_url == "http://localhost:8088"
        assert config.database_url == "sqlite:///pbx.db"
        assert config.pjsip_config == "/etc/asterisk/pjsip.conf"
        assert config.managed_files == list(DEFAULT_MANAGED_FILES)
        assert config.backup_dir is None
        assert config.backup_keep == 5
        assert config.engine_timeout == 10.0

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("PBX_ARI_USERNAME", "env-user")
        monkeypatch.setenv("PBX_ARI_PASSWORD", "env-pass")
        monkeypatch.setenv("PBX_PJSIP_CONFIG", "/env/pjsip.conf")
        config = load_config(username="cli-user", pjsip_config="/cli/pjsip.conf")
        assert config.ari_username == "cli-user"
        assert config.ari_password == "env-pass"
        assert config.pjsip_config == "/cli/pjsip.conf"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("PBX_ARI_URL", "http://env:8088")
        monkeypatch.setenv("PBX_BACKUP_KEEP", "2")
        config = load_config(
            yaml_fallbacks={
                "ari_url": "http://yaml:8088",
                "ari_username": "yaml-user",
                "ari_password": "yaml-pass",
                "backup_keep": 9,
            }
        )
        assert config.ari_url == "http://env:8088"
        assert config.ari_username == "yaml-user"
        assert config.backup_keep == 2

    def test_yaml_only_settings(self):
        config = load_config(
            username="u",
            password="p",
            yaml_fallbacks={
                "backup_tag": "pre-sync",
                "max_reported_errors": 3,
                "managed_files": ["/etc/asterisk/extensions.conf"],
                "pjsip_config": "/etc/asterisk/pjsip_custom.conf",
            },
        )
        assert config.backup_tag == "pre-sync"
        assert config.max_reported_errors == 3
        # the pjsip file is always managed
        assert config.managed_files == [
            "/etc/asterisk/pjsip_custom.conf",
            "/etc/asterisk/extensions.conf",
        ]

    def test_env_false_overrides_yaml_true(self, monkeypatch):
        monkeypatch.setenv("PBX_INSECURE", "false")
        config = load_config(username="u", password="p", yaml_fallbacks={"insecure": True})
        assert config.insecure is False

    def test_missing_credentials(self):
        with pytest.raises(ValueError, match="username"):
            load_config()

    def test_no_credentials_needed_for_backups(self):
        config = load_config(require_engine=False)
        assert config.ari_username == ""

    @pytest.mark.parametrize(
        "name, value",
        [
            ("PBX_ENGINE_TIMEOUT", "soon"),
            ("PBX_ENGINE_TIMEOUT", "0"),
            ("PBX_MAX_PARALLEL_REQUESTS", "1.5"),
            ("PBX_BACKUP_KEEP", "-2"),
        ],
    )
    def test_bad_numeric_env(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError, match=name):
            load_config(username="u", password="p")
