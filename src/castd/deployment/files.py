"""Resolve instance-persistent data files.

Data files survive upgrades: the first version that declares a data file
seeds ``<instance>/data/<path>`` from the bundle, later versions reuse the
existing copy. Each version tree receives a symlink pointing at the data copy.
"""
from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from .errors import DeploymentError

LOGGER = logging.getLogger(__name__)


def resolve_data_files(
    bundle_path: Path,
    data_root: Path,
    version_path: Path,
    data_files: Iterable[str],
) -> list[Path]:
    """Seed and link every data file, returning the links created."""
    links: list[Path] = []
    for relative in data_files:
        source = bundle_path / relative
        persistent = data_root / relative
        if not persistent.exists() and not persistent.is_symlink():
            if not source.exists():
                raise DeploymentError(f"Data file '{relative}' not found in bundle {bundle_path}")
            persistent.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, persistent, symlinks=True)
            else:
                shutil.copy2(source, persistent)
            LOGGER.debug("Seeded data file %s from %s", persistent, source)

        link = version_path / relative
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(persistent.resolve())
        links.append(link)
    return links


__all__ = ["resolve_data_files"]
