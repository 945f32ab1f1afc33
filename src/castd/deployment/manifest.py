"""Bundle manifest loading.

Each extracted bundle version carries a ``meta.json`` manifest. Only the
fields the deployment engine consumes are modelled; everything else is kept
verbatim in :attr:`Manifest.raw`. Content is parsed with PyYAML, which also
accepts JSON.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to read bundle manifests. Install with `pip install castd`."
    ) from exc

from .errors import ManifestError


@dataclass(frozen=True, slots=True)
class Manifest:
    """Fields of a bundle manifest used during deployment."""

    name: str | None = None
    version: str | None = None
    type: str | None = None
    entry_file: str | None = None
    exec_start: str | None = None
    template_files: tuple[str, ...] = ()
    data_files: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ignored_paths(self) -> tuple[str, ...]:
        """Paths excluded from plain hard-linking."""
        return self.template_files + self.data_files


def load_manifest(path: Path, *, required: bool = True) -> Manifest:
    """Load the manifest at *path*.

    A missing file raises :class:`ManifestError` when *required* is set and
    yields an empty manifest otherwise.
    """
    if not path.is_file():
        if required:
            raise ManifestError(f"Manifest not found: {path}")
        return Manifest()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ManifestError(f"Failed to parse manifest {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ManifestError(f"Manifest {path} must contain a mapping at the top level.")
    return manifest_from_mapping(data, source=str(path))


def manifest_from_mapping(data: Mapping[str, Any], *, source: str = "<manifest>") -> Manifest:
    """Build a :class:`Manifest` from already-parsed data."""
    environment = data.get("environment") or {}
    if not isinstance(environment, Mapping):
        raise ManifestError(f"{source}: 'environment' must be a mapping.")
    return Manifest(
        name=_optional_str(data, "name", source),
        version=_optional_str(data, "version", source),
        type=_optional_str(data, "type", source),
        entry_file=_optional_str(data, "entry_file", source),
        exec_start=_optional_str(data, "exec_start", source),
        template_files=_relative_paths(data.get("template_files"), "template_files", source),
        data_files=_relative_paths(data.get("data_files"), "data_files", source),
        environment={str(key): str(value) for key, value in environment.items()},
        raw=dict(data),
    )


def _optional_str(data: Mapping[str, Any], key: str, source: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    raise ManifestError(f"{source}: '{key}' must be a string.")


def _relative_paths(value: object, key: str, source: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ManifestError(f"{source}: '{key}' must be a list of paths.")
    paths: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ManifestError(f"{source}: '{key}' entries must be non-empty strings.")
        candidate = PurePosixPath(item.strip())
        if candidate.is_absolute() or ".." in candidate.parts:
            raise ManifestError(f"{source}: '{key}' entry {item!r} must stay inside the bundle.")
        paths.append(candidate.as_posix())
    return tuple(paths)


__all__ = ["Manifest", "load_manifest", "manifest_from_mapping"]
