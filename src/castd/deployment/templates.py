"""Render application templates declared by a bundle manifest."""
from __future__ import annotations

from pathlib import Path

from jinja2 import TemplateError

from ..templates import TemplateEngine
from .errors import DeploymentError
from .manifest import Manifest


def instance_template_data(
    instance_name: str,
    instance_path: Path,
    version_path: Path,
    version: str,
    bundle_name: str,
) -> dict[str, object]:
    """Return the data context available to application templates."""
    data: dict[str, object] = {
        "instance_name": instance_name,
        "instance_path": str(instance_path),
        "version_path": str(version_path),
        "version": version,
        "bundle_name": bundle_name,
        "data_path": str(instance_path / "data"),
    }
    data["instance"] = {
        "name": instance_name,
        "path": str(instance_path),
        "version_path": str(version_path),
        "version": version,
        "bundle_name": bundle_name,
    }
    return data


def realize_application_templates(
    manifest: Manifest,
    data: dict[str, object],
    source_root: Path,
    target_root: Path,
) -> list[Path]:
    """Render each manifest template from *source_root* into *target_root*.

    Rendered files keep the permission bits of their source template.
    """
    if not manifest.template_files:
        return []
    engine = TemplateEngine.for_directory(source_root)
    written: list[Path] = []
    for relative in manifest.template_files:
        source = source_root / relative
        if not source.is_file():
            raise DeploymentError(f"Template file '{relative}' not found in bundle {source_root}")
        destination = target_root / relative
        try:
            engine.render_to_path(
                relative,
                destination,
                data,
                mode=source.stat().st_mode & 0o777,
            )
        except TemplateError as exc:
            raise DeploymentError(f"Failed to render template '{relative}': {exc}") from exc
        written.append(destination)
    return written


__all__ = ["instance_template_data", "realize_application_templates"]
