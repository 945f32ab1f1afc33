"""Shared fixtures for the castd test suite."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from castd.deployment import (
    DeploymentPaths,
    InstanceOrchestrator,
    Manifest,
    ServiceAction,
    ServiceManagerError,
    ServiceNotFoundError,
)


class FakeServiceManager:
    """In-memory service manager recording every call."""

    def __init__(self) -> None:
        """Start with no registered services."""
        self.services: dict[str, dict[str, object]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()

    def create_service(self, service_name: str, version_path: Path, manifest: Manifest) -> None:
        self.calls.append(("create", service_name))
        if ("create", service_name) in self.fail_on:
            raise ServiceManagerError(f"create {service_name} failed")
        self.services[service_name] = {
            "version_path": version_path,
            "manifest": manifest,
            "enabled": False,
            "running": False,
        }

    def run_action(self, service_name: str, action: ServiceAction) -> None:
        action = ServiceAction(action)
        self.calls.append((action.value, service_name))
        if (action.value, service_name) in self.fail_on:
            raise ServiceManagerError(f"{action.value} {service_name} failed")
        service = self.services.get(service_name)
        if service is None:
            raise ServiceNotFoundError(f"Service '{service_name}' does not exist")
        if action is ServiceAction.DESTROY:
            del self.services[service_name]
        elif action is ServiceAction.ENABLE:
            service["enabled"] = True
        elif action is ServiceAction.DISABLE:
            service["enabled"] = False
        elif action in (ServiceAction.START, ServiceAction.RESTART):
            service["running"] = True
        elif action is ServiceAction.STOP:
            service["running"] = False

    def list_services(self) -> list[str]:
        return sorted(self.services)

    def actions_for(self, service_name: str) -> list[str]:
        return [action for action, name in self.calls if name == service_name]


BundleFactory = Callable[..., Path]


@pytest.fixture
def deployment_paths(tmp_path: Path) -> DeploymentPaths:
    """Return deployment roots below the temporary directory."""
    app_dir = tmp_path / "applications"
    extracted_dir = tmp_path / "extracted"
    app_dir.mkdir()
    extracted_dir.mkdir()
    return DeploymentPaths(app_dir=app_dir, extracted_dir=extracted_dir)


@pytest.fixture
def services() -> FakeServiceManager:
    """Return a fresh in-memory service manager."""
    return FakeServiceManager()


@pytest.fixture
def orchestrator(
    deployment_paths: DeploymentPaths,
    services: FakeServiceManager,
) -> InstanceOrchestrator:
    """Return an orchestrator wired to the fake service manager."""
    return InstanceOrchestrator(deployment_paths, services)


def write_hook(root: Path, name: str, body: str, *, executable: bool = True) -> Path:
    """Write a shell hook script named *name* under ``root/hooks``."""
    hook = root / "hooks" / name
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    hook.chmod(0o755 if executable else 0o644)
    return hook


@pytest.fixture
def make_bundle(deployment_paths: DeploymentPaths) -> BundleFactory:
    """Return a factory that lays out an extracted bundle version."""

    def _make(
        name: str = "myapp",
        version: str = "1.0.0",
        *,
        files: Mapping[str, str] | None = None,
        manifest: Mapping[str, object] | None = None,
        hooks: Mapping[str, str] | None = None,
    ) -> Path:
        root = deployment_paths.extracted_bundle_path(name, version)
        root.mkdir(parents=True)
        payload: dict[str, object] = {
            "name": name,
            "version": version,
            "type": "nodejs",
            "entry_file": "server.js",
        }
        payload.update(manifest or {})
        (root / "meta.json").write_text(json.dumps(payload), encoding="utf-8")
        contents = {"server.js": f"// {name} {version}\n"}
        contents.update(files or {})
        for relative, text in contents.items():
            target = root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        for hook_name, body in (hooks or {}).items():
            write_hook(root, hook_name, body)
        return root

    return _make


def link_target(path: Path) -> Path:
    """Return the resolved target of symlink *path*."""
    return Path(os.readlink(path)).resolve()
