"""
Tests for configuration loading, resolution and validation.
"""

from pathlib import Path

import pytest
import yaml

from dropsync.config import build_settings, load_config
from dropsync.config.loader import Config, _merge_dict
from dropsync.config.resolver import apply_env_overrides, resolve_config
from dropsync.exceptions import ConfigurationError

VALID = {
    "sftp": {"host": "sftp.example.com", "port": 2222, "username": "test_user", "password": "secret"},
    "sync": {
        "remote_dir": "/upload",
        "pattern": "*_data.csv",
        "local_dir": "/tmp/staging",
        "poll_interval": "5s",
    },
}


def _write(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestConfig:
    """Tests for Config class."""

    def test_dot_notation(self):
        cfg = Config({"sftp": {"host": "h"}})
        assert cfg.get("sftp.host") == "h"
        assert cfg.get("sftp.port", 22) == 22
        assert cfg.get("sftp.host.deeper", "fallback") == "fallback"

    def test_contains(self):
        cfg = Config({"a": {"b": 1}})
        assert "a" in cfg
        assert "a.b" in cfg
        assert "a.c" not in cfg

    def test_getitem(self):
        cfg = Config({"name": "x", "nested": {"key": "val"}})
        assert cfg["name"] == "x"
        assert isinstance(cfg["nested"], Config)
        assert cfg["nested"]["key"] == "val"
        with pytest.raises(KeyError):
            _ = cfg["missing"]

    def test_section(self):
        cfg = Config({"sync": {"pattern": "*"}, "odd": [1, 2]})
        assert cfg.section("sync") == {"pattern": "*"}
        assert cfg.section("odd") == {}
        assert cfg.section("absent") == {}


class TestMergeDict:
    def test_nested_merge(self):
        base = {"sftp": {"host": "a", "port": 22}, "sync": {"pattern": "*"}}
        _merge_dict(base, {"sftp": {"host": "b"}, "logging": {"level": "DEBUG"}})
        assert base == {
            "sftp": {"host": "b", "port": 22},
            "sync": {"pattern": "*"},
            "logging": {"level": "DEBUG"},
        }


class TestResolver:
    def test_placeholder_substitution(self):
        data = {"sftp": {"password": "${SFTP_PASS}", "host": "${SFTP_HOST:-localhost}"}}
        resolved = resolve_config(data, environ={"SFTP_PASS": "pw"})
        assert resolved["sftp"] == {"password": "pw", "host": "localhost"}

    def test_unresolved_left_in_place(self):
        resolved = resolve_config({"a": {"b": "${NOPE}"}}, environ={})
        assert resolved["a"]["b"] == "${NOPE}"

    def test_does_not_mutate_input(self):
        data = {"a": {"b": "${X}"}}
        resolve_config(data, environ={"X": "1"})
        assert data == {"a": {"b": "${X}"}}

    def test_env_overrides(self):
        data = {"sftp": {"password": "file"}}
        apply_env_overrides(
            data,
            {"DROPSYNC_SFTP__PASSWORD": "env", "DROPSYNC_SYNC__POLL_INTERVAL": "10", "OTHER": "x", "DROPSYNC_X": "y"},
        )
        assert data == {"sftp": {"password": "env"}, "sync": {"poll_interval": "10"}}


class TestLoadConfig:
    def test_load_from_directory(self, tmp_path):
        _write(tmp_path / "dropsync.yaml", VALID)
        cfg = load_config(tmp_path, environ={})
        assert cfg.get("sftp.host") == "sftp.example.com"
        assert cfg.source == tmp_path / "dropsync.yaml"

    def test_env_overlay(self, tmp_path):
        _write(tmp_path / "dropsync.yaml", VALID)
        _write(tmp_path / "dropsync.prod.yaml", {"sync": {"poll_interval": "1m"}})

        cfg = load_config(tmp_path / "dropsync.yaml", env="prod", environ={})

        assert cfg.get("sync.poll_interval") == "1m"
        assert cfg.get("sync.pattern") == "*_data.csv"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml_reports_line(self, tmp_path):
        path = tmp_path / "dropsync.yaml"
        path.write_text("sftp:\n  host: [unclosed\n")
        with pytest.raises(ConfigurationError, match="line"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "dropsync.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)


class TestBuildSettings:
    def test_valid(self):
        settings = build_settings(VALID)

        assert settings.sftp.host == "sftp.example.com"
        assert settings.sftp.port == 2222
        assert settings.sync.poll_interval == 5.0
        assert settings.sync.local_dir == Path("/tmp/staging")
        assert settings.sync.max_files_per_cycle is None
        assert settings.sync.skip_existing_local is True
        assert settings.sync.manifest_path is None
        assert settings.dispatch.capacity == 0
        assert settings.service.max_consecutive_failures == 5

    @pytest.mark.parametrize(
        "value,seconds",
        [(30, 30.0), ("30s", 30.0), ("5m", 300.0), ("250ms", 0.25), ("1h", 3600.0), (1.5, 1.5)],
    )
    def test_durations(self, value, seconds):
        data = {**VALID, "sync": {**VALID["sync"], "poll_interval": value}}
        assert build_settings(data).sync.poll_interval == seconds

    def test_collects_all_errors(self):
        """Every violated constraint is reported in one error."""
        data = {
            "sftp": {"host": "h", "port": 70000},
            "sync": {"remote_dir": "/up", "local_dir": "/s", "poll_interval": "soon"},
            "dispatch": {"capacity": -1},
        }
        with pytest.raises(ConfigurationError) as exc_info:
            build_settings(data)

        errors = exc_info.value.errors
        joined = "\n".join(errors)
        assert "sftp.username: is required" in joined
        assert "sftp.port: must be <= 65535" in joined
        assert "one of password or private_key_path" in joined
        assert "sync.pattern: is required" in joined
        assert "sync.poll_interval" in joined
        assert "dispatch.capacity: must be >= 0" in joined
        assert len(errors) == 6

    def test_missing_sections(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_settings({})
        assert "sftp: section is required" in exc_info.value.errors
        assert "sync: section is required" in exc_info.value.errors

    def test_unresolved_placeholder_reported(self):
        data = {**VALID, "sftp": {**VALID["sftp"], "password": "${SFTP_PASSWORD}"}}
        with pytest.raises(ConfigurationError, match="unset environment variable"):
            build_settings(data)

    def test_private_key_instead_of_password(self):
        sftp = {"host": "h", "username": "u", "private_key_path": "~/.ssh/id_ed25519"}
        settings = build_settings({**VALID, "sftp": sftp})
        assert settings.sftp.password is None
        assert settings.sftp.private_key_path == "~/.ssh/id_ed25519"

    def test_optional_sections(self):
        data = {
            **VALID,
            "sync": {**VALID["sync"], "max_files_per_cycle": 1, "skip_existing_local": "no"},
            "dispatch": {"capacity": 10, "shutdown_timeout": "2s"},
            "service": {"max_consecutive_failures": 0, "metrics_port": 9108},
        }
        settings = build_settings(data)
        assert settings.sync.max_files_per_cycle == 1
        assert settings.sync.skip_existing_local is False
        assert settings.dispatch.capacity == 10
        assert settings.dispatch.shutdown_timeout == 2.0
        assert settings.service.max_consecutive_failures == 0
        assert settings.service.metrics_port == 9108

    def test_zero_cap_rejected(self):
        data = {**VALID, "sync": {**VALID["sync"], "max_files_per_cycle": 0}}
        with pytest.raises(ConfigurationError, match="max_files_per_cycle"):
            build_settings(data)
