"""Version preparation pipeline.

Builds a new, inactive version directory for an instance from an extracted
bundle. No pointer is touched; a failure part-way leaves an orphan version
directory that is never reachable through ``current`` or ``previous``.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import BundleNotFoundError, VersionExistsError
from .files import resolve_data_files
from .fsutil import hard_link_files, template_to_tree, tree_to_template
from .hooks import InstanceHook
from .instance import Instance
from .manifest import load_manifest
from .paths import MANIFEST_FILENAME
from .steps import record_step
from .templates import instance_template_data, realize_application_templates

if TYPE_CHECKING:
    from ..logging import OperationScope
else:  # pragma: no cover - typing helper only
    OperationScope = object  # type: ignore[misc]

LOGGER = logging.getLogger(__name__)


def prepare_version(
    instance: Instance,
    version: str,
    *,
    op: OperationScope | None = None,
) -> None:
    """Materialise *version* of the instance's bundle under ``versions/``."""
    version_path = instance.version_path(version)
    bundle_path = instance.bundle_version_path(version)

    if version_path.exists() or version_path.is_symlink():
        raise VersionExistsError(f"Instance '{instance.name}' already has version '{version}'")
    if not bundle_path.is_dir():
        raise BundleNotFoundError(
            f"No bundle for version '{version}' of '{instance.bundle_name()}' at {bundle_path}"
        )

    version_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        version_path.mkdir()
    except FileExistsError as exc:
        raise VersionExistsError(
            f"Instance '{instance.name}' already has version '{version}'"
        ) from exc
    record_step(op, "prepare.mkdir", detail=version_path)

    manifest = load_manifest(bundle_path / MANIFEST_FILENAME, required=True)
    ignored = manifest.ignored_paths

    shape = tree_to_template(bundle_path, ignored)
    if shape:
        template_to_tree(version_path, shape, ignore_existing=True)
    record_step(op, "prepare.mirror", detail=version_path)

    data = instance_template_data(
        instance.name,
        instance.root,
        version_path,
        version,
        instance.bundle_name(),
    )
    rendered = realize_application_templates(manifest, data, bundle_path, version_path)
    record_step(op, "prepare.templates", detail=f"{len(rendered)} rendered")

    linked = hard_link_files(bundle_path, version_path, ignored)
    record_step(op, "prepare.hardlink", detail=f"{linked} linked")

    resolve_data_files(bundle_path, instance.data_root, version_path, manifest.data_files)
    record_step(op, "prepare.data_files", detail=f"{len(manifest.data_files)} resolved")

    hook = InstanceHook("post", "post_prepare", version_path, False, instance.hook_env)
    hook.execute(None, [version])
    record_step(op, "prepare.hook.post_prepare")
    LOGGER.debug("Prepared %s version %s at %s", instance.name, version, version_path)


__all__ = ["prepare_version"]
