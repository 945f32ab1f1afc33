"""Canonical on-disk locations for instances, versions and bundles.

Layout::

    <app_dir>/<instance>/
        bundle   -> <extracted_dir>/<bundle_name>
        current  -> <app_dir>/<instance>/versions/<bundle_name>-<active>
        previous -> <app_dir>/<instance>/versions/<bundle_name>-<old>
        data/
        versions/<bundle_name>-<version>/

    <extracted_dir>/<bundle_name>/<bundle_name>-<version>/meta.json

Nothing here touches the filesystem.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .bundles import full_bundle_name

BUNDLE_LINK = "bundle"
CURRENT_LINK = "current"
PREVIOUS_LINK = "previous"
STAGING_LINK = "new"
DATA_DIR = "data"
VERSIONS_DIR = "versions"
MANIFEST_FILENAME = "meta.json"


@dataclass(frozen=True, slots=True)
class DeploymentPaths:
    """Derive instance and bundle paths from the two configured roots."""

    app_dir: Path
    extracted_dir: Path

    def instance_root(self, instance_name: str) -> Path:
        """Return the root directory of *instance_name*."""
        return self.app_dir / instance_name

    def instance_data(self, instance_name: str) -> Path:
        """Return the persistent data directory of *instance_name*."""
        return self.instance_root(instance_name) / DATA_DIR

    def instance_versions(self, instance_name: str) -> Path:
        """Return the directory holding prepared versions of *instance_name*."""
        return self.instance_root(instance_name) / VERSIONS_DIR

    def instance_link(self, instance_name: str, link: str) -> Path:
        """Return the path of pointer *link* inside *instance_name*."""
        return self.instance_root(instance_name) / link

    def version_path(self, instance_name: str, bundle_name: str, version: str) -> Path:
        """Return where *version* of *bundle_name* lives inside the instance."""
        return self.instance_versions(instance_name) / full_bundle_name(bundle_name, version)

    def extracted_bundle_root(self, bundle_name: str) -> Path:
        """Return the directory holding every extracted version of *bundle_name*."""
        return self.extracted_dir / bundle_name

    def extracted_bundle_path(self, bundle_name: str, version: str) -> Path:
        """Return the extracted tree for *bundle_name* at *version*."""
        return self.extracted_bundle_root(bundle_name) / full_bundle_name(bundle_name, version)

    def manifest_path(self, bundle_name: str, version: str) -> Path:
        """Return the manifest file of an extracted bundle version."""
        return self.extracted_bundle_path(bundle_name, version) / MANIFEST_FILENAME


__all__ = [
    "BUNDLE_LINK",
    "CURRENT_LINK",
    "DATA_DIR",
    "DeploymentPaths",
    "MANIFEST_FILENAME",
    "PREVIOUS_LINK",
    "STAGING_LINK",
    "VERSIONS_DIR",
]
