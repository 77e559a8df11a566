"""Tests for the Pydantic config section models and the fallback adapter."""

import pytest
from pydantic import ValidationError

from pbx_reconcile.config_schema import (
    BackupConfig,
    EngineConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)


class TestUnifiedConfig:
    def test_zero_config(self):
        unified = build_config({})
        assert unified == UnifiedConfig()
        assert unified.engine.timeout == 10.0
        assert unified.backup.keep == 5
        assert unified.backup.tag == "backup"
        assert unified.files.managed == []
        assert unified.logging.level == "INFO"

    def test_sections_parsed(self):
        unified = build_config(
            {
                "engine": {"url": "http://pbx:8088", "max_parallel_requests": 8},
                "files": {"managed": ["/etc/asterisk/pjsip.conf"]},
                "database": {"url": "sqlite:///x.db"},
                "sync": {"max_reported_errors": 25},
            }
        )
        assert unified.engine.url == "http://pbx:8088"
        assert unified.engine.max_parallel_requests == 8
        assert unified.files.managed == ["/etc/asterisk/pjsip.conf"]
        assert unified.database.url == "sqlite:///x.db"
        assert unified.sync.max_reported_errors == 25

    def test_frozen(self):
        with pytest.raises(ValidationError):
            UnifiedConfig().engine.timeout = 5


class TestValidation:
    @pytest.mark.parametrize("timeout", [0, 301])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            EngineConfig(timeout=timeout)

    @pytest.mark.parametrize("value", [0, 101])
    def test_parallel_bounds(self, value):
        with pytest.raises(ValidationError):
            EngineConfig(max_parallel_requests=value)

    @pytest.mark.parametrize("tag", ["", "pre.sync", "a/b"])
    def test_bad_tag(self, tag):
        with pytest.raises(ValidationError):
            BackupConfig(tag=tag)

    def test_negative_keep(self):
        with pytest.raises(ValidationError):
            BackupConfig(keep=-1)

    def test_wrong_section_shape(self):
        with pytest.raises(ValidationError):
            build_config({"backup": "daily"})


class TestToFallbacks:
    def test_unset_values_omitted(self):
        fb = to_fallbacks(UnifiedConfig())
        assert "ari_url" not in fb
        assert "database_url" not in fb
        assert "managed_files" not in fb
        assert "backup_dir" not in fb
        assert fb["backup_keep"] == 5
        assert fb["engine_timeout"] == 10.0

    def test_values_mapped(self):
        fb = to_fallbacks(
            build_config(
                {
                    "engine": {"url": "http://pbx:8088", "username": "u", "password": "p"},
                    "files": {"pjsip": "/p.conf", "managed": ["/p.conf", "/e.conf"]},
                    "backup": {"dir": "/b", "keep": 2, "tag": "nightly"},
                    "database": {"url": "sqlite:///x.db"},
                }
            )
        )
        assert fb["ari_url"] == "http://pbx:8088"
        assert fb["ari_username"] == "u"
        assert fb["ari_password"] == "p"
        assert fb["pjsip_config"] == "/p.conf"
        assert fb["managed_files"] == ["/p.conf", "/e.conf"]
        assert fb["backup_dir"] == "/b"
        assert fb["backup_keep"] == 2
        assert fb["backup_tag"] == "nightly"
        assert fb["database_url"] == "sqlite:///x.db"
