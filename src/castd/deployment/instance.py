"""Instance handles.

An :class:`Instance` is only a name bound to the configured paths. Creating
one never touches the filesystem; :meth:`Instance.exists` is the separate
existence check. Bundle name and active version are read from the ``bundle``
and ``current`` symlinks.
"""
from __future__ import annotations

import os
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .bundles import parse_full_bundle_name
from .errors import InvalidNameError
from .hooks import INSTANCE_ENV_VAR
from .paths import BUNDLE_LINK, CURRENT_LINK, PREVIOUS_LINK, DeploymentPaths


class Instance:
    """A named deployment unit rooted at ``<app_dir>/<name>``."""

    def __init__(self, name: str, paths: DeploymentPaths) -> None:
        """Bind *name* to *paths* without checking that it exists."""
        self.name = name
        self.paths = paths
        self.root = paths.instance_root(name)
        self._bundle_name: str | None = None

    def __repr__(self) -> str:
        return f"Instance(name={self.name!r}, root={str(self.root)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Instance):
            return NotImplemented
        return self.root == other.root

    def __hash__(self) -> int:
        return hash(self.root)

    def exists(self) -> bool:
        """Return ``True`` when the instance root is a directory."""
        return self.root.is_dir()

    def link(self, name: str) -> Path:
        """Return the path of pointer *name* (``bundle``, ``current`` ...)."""
        return self.root / name

    @property
    def data_root(self) -> Path:
        return self.paths.instance_data(self.name)

    @property
    def hook_env(self) -> dict[str, str]:
        return {INSTANCE_ENV_VAR: self.name}

    def bundle_name(self) -> str:
        """Return the bundle this instance deploys (cached after first read)."""
        if self._bundle_name is None:
            target = os.readlink(self.link(BUNDLE_LINK))
            self._bundle_name = Path(target).name
        return self._bundle_name

    def bundle_version(self) -> str:
        """Return the version the ``current`` pointer resolves to."""
        return _version_from_link(self.link(CURRENT_LINK))

    def previous_version(self) -> str | None:
        """Return the version behind ``previous``, or ``None`` if unset."""
        link = self.link(PREVIOUS_LINK)
        if not link.is_symlink():
            return None
        return _version_from_link(link)

    def version_path(self, version: str) -> Path:
        """Return where *version* would live; it may not exist."""
        return self.paths.version_path(self.name, self.bundle_name(), version)

    def bundle_version_path(self, version: str) -> Path:
        """Return where the extracted bundle for *version* would live."""
        return self.paths.extracted_bundle_path(self.bundle_name(), version)

    def versions(self) -> list[str]:
        """Return every prepared version, oldest first."""
        versions_dir = self.paths.instance_versions(self.name)
        if not versions_dir.is_dir():
            return []
        found: list[str] = []
        for entry in versions_dir.iterdir():
            if not entry.is_dir():
                continue
            try:
                _, version = parse_full_bundle_name(entry.name)
            except InvalidNameError:
                continue
            found.append(version)
        return sorted(found, key=_version_sort_key)


def _version_from_link(link: Path) -> str:
    target = os.readlink(link)
    _, version = parse_full_bundle_name(Path(target).name)
    return version


def _version_sort_key(value: str) -> tuple[int, Version | str]:
    try:
        return (0, Version(value))
    except InvalidVersion:
        return (1, value)


__all__ = ["Instance"]
