"""Configuration loader for castd.

Configuration values are read from multiple sources, later sources winning:

1. Built-in defaults.
2. ``/etc/castd/config.yml`` (or an override path).
3. Environment variables prefixed with ``CASTD_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export CASTD_APP_DIR=/srv/castd/applications
    export CASTD_SYSTEMD__UNIT_PREFIX=cast

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import copy
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml


ENV_PREFIX = "CASTD_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

_UNIT_PREFIX_RE = re.compile(r"[a-zA-Z0-9_.-]+")


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    unit_dir: Path | None = None
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"
    unit_prefix: str = "castd"
    service_user: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_dir": str(self.unit_dir) if self.unit_dir is not None else None,
            "systemctl_bin": self.systemctl_bin,
            "journalctl_bin": self.journalctl_bin,
            "unit_prefix": self.unit_prefix,
            "service_user": self.service_user,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for castd."""

    config_file: Path
    app_dir: Path
    extracted_dir: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    systemd: SystemdConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "app_dir": str(self.app_dir),
            "extracted_dir": str(self.extracted_dir),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "systemd": self.systemd.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/castd/config.yml",
    "app_dir": "/opt/castd/applications",
    "extracted_dir": "/opt/castd/data/extracted",
    "logs_dir": "/var/log/castd",
    "runtime_dir": "/run/castd",
    "templates_dir": "/etc/castd/templates",
    "lock_timeout": 30.0,
    "systemd": {
        "unit_dir": None,
        "systemctl_bin": "systemctl",
        "journalctl_bin": "journalctl",
        "unit_prefix": "castd",
        "service_user": None,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SYSTEMD_KEYS = {"unit_dir", "systemctl_bin", "journalctl_bin", "unit_prefix", "service_user"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged = copy.deepcopy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_path = Path(
        config_file or resolved_env.get(CONFIG_ENV_VAR) or str(DEFAULTS["config_file"])
    )
    _apply_layer(merged, _load_yaml_file(config_path), f"file:{config_path}")
    _apply_layer(merged, _env_layer(resolved_env), "env")
    _apply_layer(merged, overrides, "overrides")
    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    if raw.get("app_dir") == raw.get("extracted_dir"):
        raise ConfigError("app_dir and extracted_dir must be different directories.")

    systemd = raw.get("systemd")
    if systemd is not None:
        systemd_map = _as_dict(systemd, "systemd")
        unknown = set(systemd_map.keys()) - ALLOWED_SYSTEMD_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown systemd configuration keys: {joined}.")
        prefix = systemd_map.get("unit_prefix")
        if prefix is not None and not _UNIT_PREFIX_RE.fullmatch(str(prefix)):
            raise ConfigError(
                f"systemd.unit_prefix must match [a-zA-Z0-9_.-]+. Got {prefix!r}."
            )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    app_dir = _to_path(raw.get("app_dir"))
    extracted_dir = _to_path(raw.get("extracted_dir"))
    logs_dir = _to_path(raw.get("logs_dir"))
    runtime_dir = _to_path(raw.get("runtime_dir"))
    templates_dir = _to_path(raw.get("templates_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    unit_dir_value = systemd_mapping.get("unit_dir")
    service_user = systemd_mapping.get("service_user")
    systemd = SystemdConfig(
        unit_dir=_to_path(unit_dir_value) if unit_dir_value else None,
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
        journalctl_bin=str(systemd_mapping.get("journalctl_bin", "journalctl")),
        unit_prefix=str(systemd_mapping.get("unit_prefix", "castd")),
        service_user=str(service_user) if service_user else None,
    )

    return AppConfig(
        config_file=config_file,
        app_dir=app_dir,
        extracted_dir=extracted_dir,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        templates_dir=templates_dir,
        lock_timeout=lock_timeout,
        systemd=systemd,
    )


def _env_layer(env: Mapping[str, str]) -> dict[str, object]:
    """Collect ``CASTD_<KEY>`` and ``CASTD_<SECTION>__<KEY>`` variables."""
    layer: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS or not key.startswith(ENV_PREFIX):
            continue
        section, _, option = key[len(ENV_PREFIX) :].lower().partition("__")
        if not section:
            continue
        parsed = _parse_env_value(value)
        if not option:
            if isinstance(layer.get(section), dict):
                raise ConfigError(f"{key} conflicts with nested {key}__* variables.")
            layer[section] = parsed
            continue
        nested = layer.setdefault(section, {})
        if not isinstance(nested, dict):
            raise ConfigError(f"{key} conflicts with {ENV_PREFIX}{section.upper()}.")
        nested[option] = parsed
    return layer


def _parse_env_value(raw: str) -> object:
    raw = raw.strip()
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _apply_layer(
    merged: dict[str, object],
    layer: Mapping[str, object] | None,
    source: str,
) -> None:
    # Sections (``systemd``) merge key by key; scalars replace.
    for key, value in _as_dict(layer, source).items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            current.update(_as_dict(value, f"{source}.{key}"))
        else:
            merged[key] = value


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "SystemdConfig",
    "load_config",
]
