"""Systemd-backed service manager for castd instances."""
from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..deployment.bundles import parse_full_bundle_name, parse_service_name
from ..deployment.errors import InvalidNameError, ServiceManagerError, ServiceNotFoundError
from ..deployment.hooks import INSTANCE_ENV_VAR
from ..deployment.manifest import Manifest
from ..deployment.services import ServiceAction
from ..templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

UNIT_TEMPLATE = "systemd/service.j2"

# Bundle ``type`` -> interpreter used when the manifest only names an entry file.
INTERPRETERS: dict[str, str] = {
    "node": "/usr/bin/env node",
    "nodejs": "/usr/bin/env node",
    "python": "/usr/bin/env python3",
    "shell": "/bin/sh",
}

_SYSTEMCTL_VERBS: dict[ServiceAction, str] = {
    ServiceAction.ENABLE: "enable",
    ServiceAction.DISABLE: "disable",
    ServiceAction.START: "start",
    ServiceAction.STOP: "stop",
    ServiceAction.RESTART: "restart",
}


@dataclass(slots=True)
class SystemdServiceManager:
    """Render unit files and drive them through ``systemctl``."""

    templates: TemplateEngine
    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"
    unit_prefix: str = "castd"
    service_user: str | None = None

    def unit_name(self, service_name: str) -> str:
        """Return the systemd unit name for *service_name*."""
        return f"{self.unit_prefix}-{service_name}.service"

    def unit_path(self, service_name: str) -> Path:
        """Return the full path of the unit file for *service_name*."""
        return self.unit_dir / self.unit_name(service_name)

    # ------------------------------------------------------------------
    # ServiceManager protocol
    # ------------------------------------------------------------------
    def create_service(self, service_name: str, version_path: Path, manifest: Manifest) -> None:
        """Write the unit for *service_name* and reload systemd."""
        instance_name, version = parse_service_name(service_name)
        try:
            bundle_name, _ = parse_full_bundle_name(version_path.name)
        except InvalidNameError as exc:
            raise ServiceManagerError(str(exc)) from exc
        context = {
            "instance_name": instance_name,
            "bundle_name": bundle_name,
            "version": version,
            "service_user": self.service_user,
            "working_directory": str(version_path),
            "exec_start": self.exec_command(version_path, manifest),
            "environment": self._environment(instance_name, manifest),
        }
        try:
            changed = self.templates.render_to_path(
                UNIT_TEMPLATE, self.unit_path(service_name), context, mode=0o644
            )
        except OSError as exc:
            raise ServiceManagerError(
                f"Unable to write unit {self.unit_name(service_name)}: {exc}"
            ) from exc
        if changed:
            self._reload_daemon()
        LOGGER.debug("Registered %s (changed=%s)", self.unit_name(service_name), changed)

    def run_action(self, service_name: str, action: ServiceAction) -> None:
        """Run *action* against the unit backing *service_name*."""
        action = ServiceAction(action)
        parse_service_name(service_name)
        if not self.unit_path(service_name).exists():
            raise ServiceNotFoundError(f"Service '{service_name}' does not exist")
        if action is ServiceAction.DESTROY:
            self._destroy(service_name)
            return
        self._systemctl(_SYSTEMCTL_VERBS[action], self.unit_name(service_name))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def list_services(self) -> list[str]:
        """Return the names of every service with a unit file, sorted."""
        if not self.unit_dir.is_dir():
            return []
        prefix = f"{self.unit_prefix}-"
        names: list[str] = []
        for unit in self.unit_dir.glob(f"{prefix}*@*.service"):
            candidate = unit.name[len(prefix) : -len(".service")]
            try:
                parse_service_name(candidate)
            except InvalidNameError:
                LOGGER.debug("Ignoring unit %s with a foreign name", unit.name)
                continue
            names.append(candidate)
        return sorted(names)

    def status(self, service_name: str) -> subprocess.CompletedProcess[str]:
        """Return ``systemctl status`` output for the unit."""
        if not self.unit_path(service_name).exists():
            raise ServiceNotFoundError(f"Service '{service_name}' does not exist")
        return self._systemctl("status", self.unit_name(service_name), check=False)

    def logs(self, service_name: str, *, lines: int | None = None) -> subprocess.CompletedProcess[str]:
        """Return journal output for the unit."""
        if not self.unit_path(service_name).exists():
            raise ServiceNotFoundError(f"Service '{service_name}' does not exist")
        args: list[str] = ["--unit", self.unit_name(service_name), "--no-pager"]
        if lines is not None:
            args.extend(["--lines", str(lines)])
        command = [self.journalctl_bin, *args]
        return self._run_command(command, check=True, error_prefix=" ".join(command))

    def exec_command(self, version_path: Path, manifest: Manifest) -> str:
        """Return the ``ExecStart`` line for a version described by *manifest*."""
        if manifest.exec_start:
            return manifest.exec_start
        if not manifest.entry_file:
            raise ServiceManagerError("Manifest defines neither exec_start nor entry_file")
        entry = shlex.quote(str(version_path / manifest.entry_file))
        interpreter = INTERPRETERS.get((manifest.type or "").lower())
        if interpreter is None:
            return entry
        return f"{interpreter} {entry}"

    # ------------------------------------------------------------------
    def _environment(self, instance_name: str, manifest: Manifest) -> list[str]:
        """Return quoted ``Environment=`` assignments for the unit."""
        pairs = [(INSTANCE_ENV_VAR, instance_name), *sorted(manifest.environment.items())]
        return [_quote_assignment(f"{key}={value}") for key, value in pairs]

    def _destroy(self, service_name: str) -> None:
        unit = self.unit_name(service_name)
        for verb in ("stop", "disable"):
            try:
                self._systemctl(verb, unit)
            except ServiceManagerError as exc:
                LOGGER.warning("Ignoring %s failure for %s: %s", verb, unit, exc)
        try:
            self.unit_path(service_name).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise ServiceManagerError(f"Unable to remove unit {unit}: {exc}") from exc
        self._reload_daemon()

    def _reload_daemon(self) -> None:
        try:
            self._systemctl("daemon-reload")
        except ServiceManagerError as exc:
            if isinstance(exc.__cause__, FileNotFoundError):
                # No systemd on this host; unit files are still written.
                LOGGER.debug("Skipping daemon-reload: %s", exc)
                return
            raise

    def _systemctl(
        self,
        command: str,
        unit: str | None = None,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        return self._run_command(args, check=check, error_prefix=f"{self.systemctl_bin} {command}")

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603
                list(args),
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            raise ServiceManagerError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = result.stdout or ""
            stderr = result.stderr or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise ServiceManagerError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


def _quote_assignment(assignment: str) -> str:
    # systemd splits unquoted assignments on whitespace and expands % specifiers.
    escaped = (
        assignment.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("%", "%%")
    )
    return f'"{escaped}"'


__all__ = ["INTERPRETERS", "SystemdServiceManager"]
