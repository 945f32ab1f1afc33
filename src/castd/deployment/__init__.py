"""Deployment engine: instances, versions and their lifecycle."""
from __future__ import annotations

from .activate import activate_version
from .bundles import (
    BundleRef,
    full_bundle_name,
    parse_full_bundle_name,
    parse_service_name,
    service_name,
    validate_bundle_name,
    validate_instance_name,
    validate_version,
)
from .errors import (
    BundleNotFoundError,
    DeploymentError,
    HookError,
    InstanceExistsError,
    InstanceNotFoundError,
    InvalidNameError,
    ManifestError,
    NotFoundError,
    ServiceManagerError,
    ServiceNotFoundError,
    ValidationError,
    VersionActiveError,
    VersionExistsError,
    VersionNotFoundError,
)
from .hooks import InstanceHook
from .instance import Instance
from .manifest import Manifest, load_manifest
from .orchestrator import InstanceOrchestrator
from .paths import DeploymentPaths
from .prepare import prepare_version
from .registry import InstanceInfo, InstanceRegistry
from .services import ServiceAction, ServiceManager, enable_and_start_service

__all__ = [
    "BundleNotFoundError",
    "BundleRef",
    "DeploymentError",
    "DeploymentPaths",
    "HookError",
    "Instance",
    "InstanceExistsError",
    "InstanceHook",
    "InstanceInfo",
    "InstanceNotFoundError",
    "InstanceOrchestrator",
    "InstanceRegistry",
    "InvalidNameError",
    "Manifest",
    "ManifestError",
    "NotFoundError",
    "ServiceAction",
    "ServiceManager",
    "ServiceManagerError",
    "ServiceNotFoundError",
    "ValidationError",
    "VersionActiveError",
    "VersionExistsError",
    "VersionNotFoundError",
    "activate_version",
    "enable_and_start_service",
    "full_bundle_name",
    "load_manifest",
    "parse_full_bundle_name",
    "parse_service_name",
    "prepare_version",
    "service_name",
    "validate_bundle_name",
    "validate_instance_name",
    "validate_version",
]
