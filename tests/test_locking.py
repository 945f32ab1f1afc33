"""Tests for the locking primitives."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from castd.locking import LockManager, LockTimeoutError


def test_instance_lock_creates_metadata(tmp_path: Path) -> None:
    """Acquiring a lock writes metadata and releases cleanly."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    lock_path = tmp_path / "run" / "alpha.lock"
    with manager.instance_lock("alpha") as handle:
        assert handle.wait_ms >= 0
        data = json.loads(lock_path.read_text(encoding="utf-8"))
        assert data["pid"] == os.getpid()
        assert data["path"] == str(lock_path)
        assert "acquired_at" in data

    with manager.instance_lock("alpha", timeout=0.2):
        pass


def test_instance_lock_timeout(tmp_path: Path) -> None:
    """Second acquisition times out while the first lock is held."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.instance_lock("alpha"):
        with pytest.raises(LockTimeoutError):
            with manager.instance_lock("alpha", timeout=0.1):
                pass


def test_mutate_instances_acquires_global_then_instance(tmp_path: Path) -> None:
    """Lock bundles take the global lock followed by per-instance locks."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.mutate_instances(["beta", "alpha", "alpha"]) as bundle:
        assert bundle.wait_ms >= 0
        assert [handle.path.name for handle in bundle.handles] == [
            "castd.lock",
            "alpha.lock",
            "beta.lock",
        ]


def test_other_instances_stay_unlocked(tmp_path: Path) -> None:
    """Holding one instance lock does not block another instance."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.instance_lock("alpha"):
        with manager.instance_lock("beta", timeout=0.1) as handle:
            assert handle.path.name == "beta.lock"
