"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from castd.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.app_dir == Path("/opt/castd/applications")
    assert config.extracted_dir == Path("/opt/castd/data/extracted")
    assert config.logs_dir == Path("/var/log/castd")
    assert config.runtime_dir == Path("/run/castd")
    assert config.templates_dir == Path("/etc/castd/templates")
    assert config.lock_timeout == 30.0
    assert config.systemd.unit_dir is None
    assert config.systemd.unit_prefix == "castd"


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "castd.yml"
    cfg.write_text(
        "app_dir: {root}/apps\n"
        "lock_timeout: 5\n"
        "systemd:\n"
        "  unit_dir: {root}/units\n"
        "  service_user: cast\n".format(root=tmp_path),
        encoding="utf-8",
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.app_dir == tmp_path / "apps"
    assert config.lock_timeout == 5.0
    assert config.systemd.unit_dir == tmp_path / "units"
    assert config.systemd.service_user == "cast"
    assert config.systemd.systemctl_bin == "systemctl"


def test_env_overrides_file_and_overrides_win(tmp_path: Path) -> None:
    """Environment beats the file, programmatic overrides beat both."""
    cfg = tmp_path / "castd.yml"
    cfg.write_text("logs_dir: /from/file\nlock_timeout: 10\n", encoding="utf-8")
    env = {
        "CASTD_CONFIG_FILE": str(cfg),
        "CASTD_LOGS_DIR": "/from/env",
        "CASTD_LOCK_TIMEOUT": "12",
        "CASTD_SYSTEMD__UNIT_PREFIX": "cast",
    }

    config = load_config(env=env, overrides={"lock_timeout": 1.5})

    assert config.config_file == cfg
    assert config.logs_dir == Path("/from/env")
    assert config.lock_timeout == 1.5
    assert config.systemd.unit_prefix == "cast"


def test_systemd_section_merges_across_sources(tmp_path: Path) -> None:
    """Nested keys from the file and environment combine; defaults stay untouched."""
    cfg = tmp_path / "castd.yml"
    cfg.write_text("systemd:\n  service_user: cast\n", encoding="utf-8")

    config = load_config(
        config_file=cfg,
        env={"CASTD_SYSTEMD__UNIT_DIR": str(tmp_path / "units")},
    )
    fresh = load_config(config_file=tmp_path / "missing.yml", env={})

    assert config.systemd.service_user == "cast"
    assert config.systemd.unit_dir == tmp_path / "units"
    assert config.systemd.unit_prefix == "castd"
    assert fresh.systemd.service_user is None
    assert fresh.systemd.unit_dir is None


def test_env_section_conflict_rejected() -> None:
    """A scalar and a nested variable for the same section cannot coexist."""
    with pytest.raises(ConfigError, match="conflicts"):
        load_config(
            config_file="/nonexistent/castd.yml",
            env={"CASTD_SYSTEMD": "plain", "CASTD_SYSTEMD__UNIT_PREFIX": "cast"},
        )


def test_unknown_keys_rejected(tmp_path: Path) -> None:
    """Unknown top-level and nested keys raise ``ConfigError``."""
    cfg = tmp_path / "castd.yml"
    cfg.write_text("bogus: 1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="bogus"):
        load_config(config_file=cfg, env={})

    cfg.write_text("systemd:\n  nope: 1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="nope"):
        load_config(config_file=cfg, env={})


def test_app_and_extracted_dirs_must_differ(tmp_path: Path) -> None:
    """Instances cannot live inside the extracted bundle root."""
    with pytest.raises(ConfigError):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"app_dir": "/srv/x", "extracted_dir": "/srv/x"},
        )


@pytest.mark.parametrize("value", [0, -1, "abc", True])
def test_lock_timeout_validation(tmp_path: Path, value: object) -> None:
    """Lock timeout must be a positive number."""
    with pytest.raises(ConfigError):
        load_config(config_file=tmp_path / "missing.yml", env={}, overrides={"lock_timeout": value})


def test_unit_prefix_validation(tmp_path: Path) -> None:
    """Unit prefixes are restricted to unit-name-safe characters."""
    with pytest.raises(ConfigError):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"systemd": {"unit_prefix": "bad prefix"}},
        )


def test_to_dict_is_serialisable(tmp_path: Path) -> None:
    """``to_dict`` renders paths as strings."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    data = config.to_dict()

    assert data["app_dir"] == "/opt/castd/applications"
    assert data["systemd"] == {
        "unit_dir": None,
        "systemctl_bin": "systemctl",
        "journalctl_bin": "journalctl",
        "unit_prefix": "castd",
        "service_user": None,
    }
