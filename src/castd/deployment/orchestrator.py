"""Instance lifecycle orchestration.

``create``, ``upgrade`` and ``destroy`` sequence the preparation and
activation pipelines with the injected service manager:

* ``create`` tears the half-built instance down again through ``destroy``
  when any step fails, then re-raises the original error.
* ``upgrade`` prepares the new version and registers its service before the
  cutover, and only retires the old service once the new one has started.
  A failure after cutover is surfaced as-is; the instance keeps pointing at
  the new version.
* ``destroy`` has no preconditions and never fails because of a step.

When a :class:`~castd.locking.LockManager` is supplied, each operation holds
the global lock and the per-instance lock for its duration.
"""
from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from .activate import activate_version
from .bundles import (
    BundleRef,
    service_name,
    validate_instance_name,
    validate_version,
)
from .errors import BundleNotFoundError, InstanceExistsError, VersionActiveError
from .instance import Instance
from .manifest import load_manifest
from .paths import BUNDLE_LINK, DATA_DIR, PREVIOUS_LINK, VERSIONS_DIR, DeploymentPaths
from .prepare import prepare_version
from .registry import InstanceRegistry
from .services import ServiceAction, ServiceManager, enable_and_start_service
from .steps import best_effort, record_step

if TYPE_CHECKING:
    from ..locking import LockManager
    from ..logging import OperationScope
else:  # pragma: no cover - typing helper only
    LockManager = object  # type: ignore[misc]
    OperationScope = object  # type: ignore[misc]

LOGGER = logging.getLogger(__name__)

_PREVIOUS_STAGING_LINK = ".previous.new"


class InstanceOrchestrator:
    """Top-level create/upgrade/destroy operations."""

    def __init__(
        self,
        paths: DeploymentPaths,
        services: ServiceManager,
        *,
        locks: LockManager | None = None,
    ) -> None:
        """Wire the orchestrator to its paths, service manager and locks."""
        self.paths = paths
        self.services = services
        self.locks = locks
        self.registry = InstanceRegistry(paths)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def create(
        self,
        instance_name: str,
        bundle_name: str,
        bundle_version: str,
        start_service: bool = True,
        *,
        op: OperationScope | None = None,
    ) -> Instance:
        """Create *instance_name* running *bundle_name* at *bundle_version*."""
        validate_instance_name(instance_name)
        bundle = BundleRef(bundle_name, bundle_version)
        extracted_root = self.paths.extracted_bundle_root(bundle.name)
        if not self.paths.extracted_bundle_path(bundle.name, bundle.version).is_dir():
            raise BundleNotFoundError(f"Invalid bundle name or version: {bundle.token}")

        with self._locked(instance_name, op):
            root = self.paths.instance_root(instance_name)
            if root.exists() or root.is_symlink():
                raise InstanceExistsError(f"Instance name '{instance_name}' already in use")
            root.parent.mkdir(parents=True, exist_ok=True)
            try:
                root.mkdir()
            except FileExistsError as exc:
                raise InstanceExistsError(
                    f"Instance name '{instance_name}' already in use"
                ) from exc
            record_step(op, "create.mkdir", detail=root)

            instance = Instance(instance_name, self.paths)
            registered: list[str] = []
            try:
                self._build(instance, bundle, extracted_root, start_service, registered, op)
            except Exception:
                LOGGER.warning("Creating instance %s failed; removing it", instance_name)
                self._destroy(instance, op, fallback_service=next(iter(registered), None))
                raise
        return instance

    def upgrade(
        self,
        instance_name: str,
        bundle_version: str,
        *,
        op: OperationScope | None = None,
    ) -> Instance:
        """Upgrade *instance_name* to *bundle_version* of its bundle."""
        validate_instance_name(instance_name)
        validate_version(bundle_version)
        with self._locked(instance_name, op):
            instance = self.registry.get(instance_name)
            bundle_name = instance.bundle_name()
            bundle = BundleRef(bundle_name, bundle_version)
            if not self.paths.extracted_bundle_path(bundle_name, bundle_version).is_dir():
                raise BundleNotFoundError(
                    f"Bundle {bundle_name} version {bundle_version} doesn't exist"
                )
            old_version = instance.bundle_version()
            if old_version == bundle_version:
                raise VersionActiveError(
                    f"Version {bundle_version} is currently active version"
                )

            new_service = service_name(instance.name, bundle_version)
            old_service = service_name(instance.name, old_version)
            old_version_path = instance.version_path(old_version)

            prepare_version(instance, bundle_version, op=op)
            manifest = load_manifest(self.paths.manifest_path(bundle.name, bundle.version))
            self.services.create_service(new_service, instance.version_path(bundle_version), manifest)
            record_step(op, "service.create", detail=new_service)

            activate_version(instance, bundle_version, op=op)

            best_effort(
                op,
                "service.disable_old",
                self.services.run_action,
                old_service,
                ServiceAction.DISABLE,
            )
            enable_and_start_service(self.services, new_service)
            record_step(op, "service.enable_start", detail=new_service)

            best_effort(op, "link.previous", _replace_previous_link, instance, old_version_path)
            best_effort(
                op,
                "service.destroy_old",
                self.services.run_action,
                old_service,
                ServiceAction.DESTROY,
            )
        return instance

    def destroy(self, instance: Instance | str, *, op: OperationScope | None = None) -> None:
        """Remove every trace of *instance*; step failures are ignored."""
        if isinstance(instance, str):
            instance = Instance(validate_instance_name(instance), self.paths)
        with self._locked(instance.name, op):
            self._destroy(instance, op)

    def prepare(
        self,
        instance_name: str,
        version: str,
        *,
        op: OperationScope | None = None,
    ) -> Path:
        """Prepare *version* for an existing instance without activating it."""
        validate_instance_name(instance_name)
        validate_version(version)
        with self._locked(instance_name, op):
            instance = self.registry.get(instance_name)
            prepare_version(instance, version, op=op)
            return instance.version_path(version)

    def activate(
        self,
        instance_name: str,
        version: str,
        *,
        op: OperationScope | None = None,
    ) -> Path:
        """Point ``current`` of an existing instance at a prepared *version*."""
        validate_instance_name(instance_name)
        validate_version(version)
        with self._locked(instance_name, op):
            instance = self.registry.get(instance_name)
            activate_version(instance, version, op=op)
            return instance.version_path(version)

    def rollback(self, instance_name: str, *, op: OperationScope | None = None) -> None:
        """Return an instance to its previous version (not implemented)."""
        raise NotImplementedError(
            "Automatic rollback is not implemented; activate a prepared version instead."
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _build(
        self,
        instance: Instance,
        bundle: BundleRef,
        extracted_root: Path,
        start_service: bool,
        registered: list[str],
        op: OperationScope | None,
    ) -> None:
        (instance.root / DATA_DIR).mkdir()
        (instance.root / VERSIONS_DIR).mkdir()
        instance.link(BUNDLE_LINK).symlink_to(extracted_root.resolve())
        record_step(op, "create.layout", detail=instance.root)

        prepare_version(instance, bundle.version, op=op)
        manifest = load_manifest(self.paths.manifest_path(bundle.name, bundle.version))

        binding = service_name(instance.name, bundle.version)
        # Recorded first so cleanup also covers a partially written registration.
        registered.append(binding)
        self.services.create_service(binding, instance.version_path(bundle.version), manifest)
        record_step(op, "service.create", detail=binding)

        activate_version(instance, bundle.version, op=op)

        if start_service:
            enable_and_start_service(self.services, binding)
            record_step(op, "service.enable_start", detail=binding)
        else:
            record_step(op, "service.enable_start", status="skipped", detail=binding)

    def _destroy(
        self,
        instance: Instance,
        op: OperationScope | None,
        *,
        fallback_service: str | None = None,
    ) -> None:
        version = best_effort(op, "destroy.resolve_version", instance.bundle_version)
        binding = fallback_service
        if version is not None:
            binding = service_name(instance.name, version)
        if binding is not None:
            best_effort(
                op,
                "destroy.service",
                self.services.run_action,
                binding,
                ServiceAction.DESTROY,
            )
        best_effort(op, "destroy.remove_tree", _remove_tree, instance.root)

    @contextmanager
    def _locked(self, instance_name: str, op: OperationScope | None) -> Iterator[None]:
        if self.locks is None:
            yield
            return
        with self.locks.mutate_instances([instance_name]) as bundle:
            if op is not None:
                op.set_lock_wait_ms(bundle.wait_ms)
            yield


def _replace_previous_link(instance: Instance, old_version_path: Path) -> None:
    staging = instance.link(_PREVIOUS_STAGING_LINK)
    if staging.is_symlink():
        staging.unlink()
    staging.symlink_to(old_version_path.resolve())
    os.replace(staging, instance.link(PREVIOUS_LINK))


def _remove_tree(root: Path) -> None:
    if root.is_symlink() or root.is_file():
        root.unlink()
    elif root.exists():
        shutil.rmtree(root)


__all__ = ["InstanceOrchestrator"]
