"""Discover and look up instances on disk."""
from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass

from .errors import InstanceNotFoundError
from .instance import Instance
from .paths import DeploymentPaths


@dataclass(frozen=True, slots=True)
class InstanceInfo:
    """Reporting view of an instance."""

    name: str
    bundle_name: str
    bundle_version: str

    def to_dict(self) -> dict[str, str]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "bundle_name": self.bundle_name,
            "bundle_version": self.bundle_version,
        }


class InstanceRegistry:
    """Enumerate instances below ``app_dir``."""

    def __init__(self, paths: DeploymentPaths) -> None:
        """Initialise the registry for *paths*."""
        self.paths = paths

    def instance(self, name: str) -> Instance:
        """Return an unchecked handle for *name*."""
        return Instance(name, self.paths)

    def exists(self, name: str) -> bool:
        """Return ``True`` when instance *name* exists."""
        return self.instance(name).exists()

    def get(self, name: str) -> Instance:
        """Return the instance named *name*, which must exist."""
        instance = self.instance(name)
        if not instance.exists():
            raise InstanceNotFoundError(f"Instance '{name}' doesn't exist")
        return instance

    def list(self) -> list[Instance]:
        """Return every existing instance in directory order."""
        app_dir = self.paths.app_dir
        if not app_dir.is_dir():
            return []
        candidates = [self.instance(entry.name) for entry in app_dir.iterdir()]
        return [candidate for candidate in candidates if candidate.exists()]

    def describe(self, instance: Instance) -> InstanceInfo:
        """Return bundle name and active version of *instance*.

        Both lookups read independent symlinks and run concurrently.
        """
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
            name_future = executor.submit(instance.bundle_name)
            version_future = executor.submit(instance.bundle_version)
            bundle_name = name_future.result()
            bundle_version = version_future.result()
        return InstanceInfo(
            name=instance.name,
            bundle_name=bundle_name,
            bundle_version=bundle_version,
        )

    def describe_all(self) -> list[InstanceInfo]:
        """Describe every instance, sorted by name."""
        infos = [self.describe(instance) for instance in self.list()]
        return sorted(infos, key=lambda info: info.name)


__all__ = ["InstanceInfo", "InstanceRegistry"]
