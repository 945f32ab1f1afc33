"""Typer-powered command line interface for ``castd``.

Commands map onto the deployment engine: ``instance`` manages instance
lifecycles (create, upgrade, destroy, prepare, activate) and ``service``
drives the systemd units that run them. Every command runs inside a
structured operation scope so its steps land in ``operations.jsonl``.
"""
from __future__ import annotations

import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .deployment import (
    DeploymentError,
    DeploymentPaths,
    HookError,
    InstanceOrchestrator,
    InstanceRegistry,
    ManifestError,
    NotFoundError,
    ServiceAction,
    ServiceManagerError,
    ValidationError,
    parse_service_name,
    validate_instance_name,
)
from .exit_codes import ExitCode
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .providers import SystemdServiceManager
from .templates import TemplateEngine

console = Console()

DEFAULT_UNIT_DIR = Path("/etc/systemd/system")

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to castd's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Cast deployment daemon CLI.

        Deploy extracted application bundles as isolated instances, upgrade
        them atomically and manage the systemd services that run them.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine
    paths: DeploymentPaths
    registry: InstanceRegistry
    services: SystemdServiceManager
    orchestrator: InstanceOrchestrator


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    locks = LockManager(config.runtime_dir, config.lock_timeout)
    logger = StructuredLogger(config.logs_dir)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    paths = DeploymentPaths(config.app_dir, config.extracted_dir)
    systemd_config = config.systemd
    services = SystemdServiceManager(
        templates=templates,
        unit_dir=systemd_config.unit_dir or DEFAULT_UNIT_DIR,
        systemctl_bin=systemd_config.systemctl_bin,
        journalctl_bin=systemd_config.journalctl_bin,
        unit_prefix=systemd_config.unit_prefix,
        service_user=systemd_config.service_user,
    )
    runtime = RuntimeContext(
        config=config,
        locks=locks,
        logger=logger,
        templates=templates,
        paths=paths,
        registry=InstanceRegistry(paths),
        services=services,
        orchestrator=InstanceOrchestrator(paths, services, locks=locks),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the castd version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"castd {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file, lock_timeout)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an engine failure onto a CLI exit code."""
    if isinstance(exc, NotFoundError):
        return ExitCode.NOT_FOUND
    if isinstance(exc, ValidationError):
        return ExitCode.VALIDATION
    if isinstance(exc, HookError | ServiceManagerError | ManifestError):
        return ExitCode.PROVIDER
    if isinstance(exc, LockTimeoutError | OSError):
        return ExitCode.ENVIRONMENT
    return ExitCode.PROVIDER


def _engine_error(op: OperationScope, exc: BaseException) -> NoReturn:
    errors = [str(exc)]
    if isinstance(exc, HookError) and exc.stderr.strip():
        errors.append(exc.stderr.strip())
    _command_error(op, str(exc) or type(exc).__name__, rc=exit_code_for(exc), errors=errors)


ENGINE_ERRORS: tuple[type[BaseException], ...] = (DeploymentError, LockTimeoutError, OSError)


# ----------------------------------------------------------------------
# config
# ----------------------------------------------------------------------
config_app = typer.Typer(help="Inspect the resolved configuration.")
instances_app = typer.Typer(help="Manage deployed application instances.")
services_app = typer.Typer(help="Manage instance services.")

app.add_typer(config_app, name="config")
app.add_typer(instances_app, name="instance")
app.add_typer(services_app, name="service")


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Show the merged configuration."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()
    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Reported configuration as JSON.", changed=0)
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in _flatten(data):
            table.add_row(key, "" if value is None else str(value))
        console.print(table)
        op.success("Reported configuration.", changed=0)


def _flatten(data: dict[str, object], prefix: str = "") -> list[tuple[str, object]]:
    rows: list[tuple[str, object]] = []
    for key, value in data.items():
        label = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, prefix=f"{label}."))
        else:
            rows.append((label, value))
    return rows


# ----------------------------------------------------------------------
# instance
# ----------------------------------------------------------------------
@instances_app.command("list")
def instance_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List instances with their bundle and active version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance list",
        args={"json": json_output},
        target={"kind": "instance", "scope": "all"},
    ) as op:
        try:
            infos = runtime.registry.describe_all()
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        entries = [info.to_dict() for info in infos]
        if json_output:
            console.print_json(data={"instances": entries})
            op.success("Reported instance list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Bundle")
        table.add_column("Version")
        if not entries:
            table.add_row("(none)", "", "")
        for entry in entries:
            table.add_row(entry["name"], entry["bundle_name"], entry["bundle_version"])
        console.print(table)
        op.success("Reported instance list.", changed=0)


@instances_app.command("show")
def instance_show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the instance to display."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show details for a single instance."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance show",
        args={"name": name, "json": json_output},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            instance = runtime.registry.get(validate_instance_name(name))
            info = runtime.registry.describe(instance)
            details: dict[str, object] = {
                **info.to_dict(),
                "previous_version": instance.previous_version(),
                "versions": instance.versions(),
                "path": str(instance.root),
            }
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        if json_output:
            console.print_json(data=details)
            op.success("Displayed instance details as JSON.", changed=0)
            return

        table = Table(show_header=False)
        for key, value in details.items():
            if value in (None, "", []):
                continue
            rendered = ", ".join(value) if isinstance(value, list) else str(value)
            table.add_row(key.replace("_", " ").title(), rendered)
        console.print(table)
        op.success("Displayed instance details.", changed=0)


@instances_app.command("create")
def instance_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the new instance."),
    bundle_name: str = typer.Argument(..., help="Extracted bundle to deploy."),
    bundle_version: str = typer.Argument(..., help="Bundle version to deploy."),
    no_start: bool = typer.Option(
        False,
        "--no-start",
        help="Register the service without enabling or starting it.",
    ),
) -> None:
    """Create an instance from an extracted bundle."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance create",
        args={"bundle_name": bundle_name, "bundle_version": bundle_version, "no_start": no_start},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            instance = runtime.orchestrator.create(
                name,
                bundle_name,
                bundle_version,
                start_service=not no_start,
                op=op,
            )
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        console.print(
            f"[green]Created instance {instance.name} ({bundle_name} {bundle_version}).[/green]"
        )
        op.success(
            f"Created instance {instance.name}.",
            changed=1,
            context={"path": str(instance.root), "version": bundle_version},
        )


@instances_app.command("upgrade")
def instance_upgrade(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to upgrade."),
    version: str = typer.Argument(..., help="Bundle version to upgrade to."),
) -> None:
    """Upgrade an instance to another version of its bundle."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance upgrade",
        args={"version": version},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            instance = runtime.orchestrator.upgrade(validate_instance_name(name), version, op=op)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        warnings = [
            f"{step['name']}: {step.get('detail', '')}"
            for step in op.steps
            if step.get("status") == "warning"
        ]
        console.print(f"[green]Upgraded instance {instance.name} to {version}.[/green]")
        if warnings:
            for warning in warnings:
                console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
            op.warning(
                f"Upgraded instance {instance.name} with warnings.",
                warnings=warnings,
                changed=1,
            )
            return
        op.success(f"Upgraded instance {instance.name}.", changed=1, context={"version": version})


@instances_app.command("destroy")
def instance_destroy(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to destroy."),
) -> None:
    """Destroy an instance and its service."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance destroy",
        args={},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            instance = runtime.registry.get(validate_instance_name(name))
            runtime.orchestrator.destroy(instance, op=op)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        console.print(f"[green]Destroyed instance {name}.[/green]")
        op.success(f"Destroyed instance {name}.", changed=1)


@instances_app.command("prepare")
def instance_prepare(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to prepare a version for."),
    version: str = typer.Argument(..., help="Bundle version to prepare."),
) -> None:
    """Prepare a version of an instance without activating it."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance prepare",
        args={"version": version},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            version_path = runtime.orchestrator.prepare(validate_instance_name(name), version, op=op)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        console.print(f"Prepared {name} version {version} at {version_path}.")
        op.success(f"Prepared version {version}.", changed=1, context={"path": str(version_path)})


@instances_app.command("activate")
def instance_activate(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to activate a version for."),
    version: str = typer.Argument(..., help="Prepared version to activate."),
) -> None:
    """Point an instance at a previously prepared version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance activate",
        args={"version": version},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            runtime.orchestrator.activate(validate_instance_name(name), version, op=op)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        console.print(f"Activated {name} version {version}.")
        op.success(f"Activated version {version}.", changed=1)


# ----------------------------------------------------------------------
# service
# ----------------------------------------------------------------------
def _service_action(ctx: typer.Context, service: str, action: ServiceAction) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"service {action.value}",
        args={},
        target={"kind": "service", "name": service},
    ) as op:
        try:
            runtime.services.run_action(service, action)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)
        op.add_step(f"service.{action.value}", detail=runtime.services.unit_name(service))
        console.print(f"Service {service}: {action.value} ok.")
        op.success(f"Service {action.value} completed.", changed=1)


SERVICE_ARGUMENT = typer.Argument(..., help="Service name (<instance>@<version>).")


@services_app.command("list")
def service_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List services that have a unit file."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "service list",
        args={"json": json_output},
        target={"kind": "service", "scope": "all"},
    ) as op:
        try:
            names = runtime.services.list_services()
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)

        entries = []
        for service in names:
            instance_name, version = parse_service_name(service)
            entries.append(
                {
                    "service": service,
                    "instance": instance_name,
                    "version": version,
                    "unit": runtime.services.unit_name(service),
                }
            )
        if json_output:
            console.print_json(data={"services": entries})
            op.success("Reported service list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Service", style="bold")
        table.add_column("Instance")
        table.add_column("Version")
        table.add_column("Unit")
        if not entries:
            table.add_row("(none)", "", "", "")
        for entry in entries:
            table.add_row(entry["service"], entry["instance"], entry["version"], entry["unit"])
        console.print(table)
        op.success("Reported service list.", changed=0)



@services_app.command("enable")
def service_enable(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Enable a service."""
    _service_action(ctx, service, ServiceAction.ENABLE)


@services_app.command("disable")
def service_disable(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Disable a service."""
    _service_action(ctx, service, ServiceAction.DISABLE)


@services_app.command("start")
def service_start(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Start a service."""
    _service_action(ctx, service, ServiceAction.START)


@services_app.command("stop")
def service_stop(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Stop a service."""
    _service_action(ctx, service, ServiceAction.STOP)


@services_app.command("restart")
def service_restart(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Restart a service."""
    _service_action(ctx, service, ServiceAction.RESTART)


@services_app.command("status")
def service_status(ctx: typer.Context, service: str = SERVICE_ARGUMENT) -> None:
    """Show ``systemctl status`` output for a service."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "service status",
        args={},
        target={"kind": "service", "name": service},
    ) as op:
        try:
            result = runtime.services.status(service)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)
        output = (result.stdout or "").rstrip()
        if output:
            console.print(output, markup=False, highlight=False)
        op.success(
            "Reported service status.",
            changed=0,
            context={"returncode": result.returncode},
        )


@services_app.command("logs")
def service_logs(
    ctx: typer.Context,
    service: str = SERVICE_ARGUMENT,
    lines: int | None = typer.Option(
        None,
        "--lines",
        "-n",
        min=1,
        help="Number of journal lines to show.",
    ),
) -> None:
    """Show journal output for a service."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "service logs",
        args={"lines": lines},
        target={"kind": "service", "name": service},
    ) as op:
        try:
            result = runtime.services.logs(service, lines=lines)
        except ENGINE_ERRORS as exc:
            _engine_error(op, exc)
        output = (result.stdout or "").rstrip()
        if output:
            console.print(output, markup=False, highlight=False)
        op.success("Reported service logs.", changed=0)


__all__ = ["RuntimeContext", "app", "exit_code_for"]
