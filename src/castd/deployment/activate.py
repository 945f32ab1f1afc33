"""Version activation pipeline.

Cutover is a single ``rename(2)`` of a freshly created staging symlink onto
``current``, so readers observe either the old or the new target and never a
missing or half-written pointer. Hooks around the cutover are advisory: a
failing ``post_version_activate`` hook is reported after the commit and is
not rolled back.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from .errors import VersionNotFoundError
from .hooks import InstanceHook
from .instance import Instance
from .paths import CURRENT_LINK, STAGING_LINK
from .steps import record_step

if TYPE_CHECKING:
    from ..logging import OperationScope
else:  # pragma: no cover - typing helper only
    OperationScope = object  # type: ignore[misc]

LOGGER = logging.getLogger(__name__)


def activate_version(
    instance: Instance,
    version: str,
    *,
    op: OperationScope | None = None,
) -> None:
    """Point ``current`` at *version*, which must already be prepared."""
    version_path = instance.version_path(version)
    if not version_path.is_dir():
        raise VersionNotFoundError(f"Cannot activate nonexistent version '{version}'")

    argv = [version, str(version_path)]
    pre_hook = InstanceHook("pre", "pre_version_activate", version_path, False, instance.hook_env)
    pre_hook.execute(None, argv)
    record_step(op, "activate.hook.pre_version_activate")

    staging_link = instance.link(STAGING_LINK)
    current_link = instance.link(CURRENT_LINK)
    if staging_link.is_symlink():
        # Left behind by an interrupted activation.
        staging_link.unlink()
    staging_link.symlink_to(version_path.resolve())
    os.replace(staging_link, current_link)
    record_step(op, "activate.cutover", detail=current_link)
    LOGGER.debug("Activated %s version %s", instance.name, version)

    post_hook = InstanceHook("post", "post_version_activate", version_path, False, instance.hook_env)
    post_hook.execute(None, argv)
    record_step(op, "activate.hook.post_version_activate")


__all__ = ["activate_version"]
