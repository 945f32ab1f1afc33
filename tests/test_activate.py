"""Tests for the version activation pipeline."""
from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest
from conftest import BundleFactory, link_target

from castd.deployment.activate import activate_version
from castd.deployment.errors import HookError, VersionNotFoundError
from castd.deployment.instance import Instance
from castd.deployment.paths import DeploymentPaths
from castd.deployment.prepare import prepare_version


def _prepared_instance(
    paths: DeploymentPaths,
    make_bundle: BundleFactory,
    versions: tuple[str, ...] = ("1.0.0",),
    hooks: dict[str, str] | None = None,
) -> Instance:
    for version in versions:
        make_bundle(version=version, hooks=hooks)
    root = paths.instance_root("alpha")
    (root / "data").mkdir(parents=True)
    (root / "versions").mkdir()
    (root / "bundle").symlink_to(paths.extracted_bundle_root("myapp"))
    instance = Instance("alpha", paths)
    for version in versions:
        prepare_version(instance, version)
    return instance


def test_activate_points_current_at_version(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """``current`` resolves to the activated version and no staging link remains."""
    instance = _prepared_instance(deployment_paths, make_bundle)

    activate_version(instance, "1.0.0")

    assert link_target(instance.root / "current") == instance.version_path("1.0.0").resolve()
    assert instance.bundle_version() == "1.0.0"
    assert not (instance.root / "new").is_symlink()


def test_activate_unprepared_version(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """Only prepared versions can be activated."""
    instance = _prepared_instance(deployment_paths, make_bundle)

    with pytest.raises(VersionNotFoundError):
        activate_version(instance, "2.0.0")


def test_activate_replaces_stale_staging_link(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """A staging link left by an interrupted activation is replaced."""
    instance = _prepared_instance(deployment_paths, make_bundle)
    (instance.root / "new").symlink_to(instance.root / "nowhere")

    activate_version(instance, "1.0.0")

    assert instance.bundle_version() == "1.0.0"


def test_activation_hooks_receive_version_and_path(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """Both activation hooks run with the version and its path."""
    hooks = {
        "pre_version_activate": 'echo "pre $1 $2" >> "$CAST_HOOK_NAME.log"',
        "post_version_activate": 'echo "post $1 $2" >> "$CAST_HOOK_NAME.log"',
    }
    instance = _prepared_instance(deployment_paths, make_bundle, hooks=hooks)
    version_path = instance.version_path("1.0.0")

    activate_version(instance, "1.0.0")

    pre = (version_path / "pre_version_activate.log").read_text(encoding="utf-8")
    post = (version_path / "post_version_activate.log").read_text(encoding="utf-8")
    assert pre == f"pre 1.0.0 {version_path}\n"
    assert post == f"post 1.0.0 {version_path}\n"


def test_failing_pre_hook_keeps_current(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """A failing pre-activation hook leaves the old target in place."""
    instance = _prepared_instance(deployment_paths, make_bundle, versions=("1.0.0", "2.0.0"))
    activate_version(instance, "1.0.0")
    hook = instance.version_path("2.0.0") / "hooks" / "pre_version_activate"
    hook.parent.mkdir()
    hook.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")
    hook.chmod(0o755)

    with pytest.raises(HookError):
        activate_version(instance, "2.0.0")

    assert instance.bundle_version() == "1.0.0"


def test_failing_post_hook_after_commit(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """A failing post-activation hook is reported but the cutover stands."""
    instance = _prepared_instance(
        deployment_paths, make_bundle, hooks={"post_version_activate": "exit 2"}
    )

    with pytest.raises(HookError):
        activate_version(instance, "1.0.0")

    assert instance.bundle_version() == "1.0.0"


def test_cutover_is_atomic_for_readers(
    deployment_paths: DeploymentPaths,
    make_bundle: BundleFactory,
) -> None:
    """Concurrent readers always find ``current`` pointing at a real version."""
    instance = _prepared_instance(deployment_paths, make_bundle, versions=("1.0.0", "2.0.0"))
    activate_version(instance, "1.0.0")
    current = instance.root / "current"
    valid = {instance.version_path(v).resolve() for v in ("1.0.0", "2.0.0")}
    failures: list[str] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            try:
                target = Path(os.readlink(current))
            except OSError as exc:
                failures.append(repr(exc))
                continue
            if target not in valid or not target.is_dir():
                failures.append(str(target))

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for index in range(200):
            activate_version(instance, "2.0.0" if index % 2 == 0 else "1.0.0")
    finally:
        stop.set()
        thread.join()

    assert failures == []
    assert instance.bundle_version() == "1.0.0"
