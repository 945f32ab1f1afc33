"""Service manager contract used by the lifecycle orchestrator.

The engine never talks to a supervisor directly; it receives an object
implementing :class:`ServiceManager`. :mod:`castd.providers.systemd` ships the
production implementation and the test-suite uses an in-memory fake.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Protocol

from .manifest import Manifest


class ServiceAction(str, Enum):
    """Actions accepted by :meth:`ServiceManager.run_action`."""

    ENABLE = "enable"
    DISABLE = "disable"
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    DESTROY = "destroy"


class ServiceManager(Protocol):
    """Register services and run lifecycle actions against them.

    ``run_action`` raises :class:`~castd.deployment.errors.ServiceNotFoundError`
    for unknown services and
    :class:`~castd.deployment.errors.ServiceManagerError` for anything else.
    """

    def create_service(self, service_name: str, version_path: Path, manifest: Manifest) -> None:
        """Register *service_name* to run the version at *version_path*."""
        ...

    def run_action(self, service_name: str, action: ServiceAction) -> None:
        """Run *action* against *service_name*."""
        ...

    def list_services(self) -> list[str]:
        """Return the names of all registered services, sorted."""
        ...


def enable_and_start_service(manager: ServiceManager, service_name: str) -> None:
    """Enable *service_name* and then start it."""
    manager.run_action(service_name, ServiceAction.ENABLE)
    manager.run_action(service_name, ServiceAction.START)


__all__ = ["ServiceAction", "ServiceManager", "enable_and_start_service"]
