"""File-based locking primitives.

Mutating operations acquire the global ``castd.lock`` followed by one lock per
affected instance under ``<runtime_dir>``. Locks are advisory ``flock`` locks;
lock files persist after release so operators can inspect who last held
them.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

GLOBAL_LOCK_NAME = "castd.lock"
_POLL_INTERVAL = 0.05


class LockTimeoutError(RuntimeError):
    """Raised when a lock cannot be acquired within the timeout."""


@dataclass(slots=True)
class LockHandle:
    """A held lock and the time spent waiting for it."""

    path: Path
    wait_ms: int


@dataclass(slots=True)
class LockBundle:
    """A set of held locks acquired in order."""

    handles: list[LockHandle]

    @property
    def wait_ms(self) -> int:
        """Total time spent waiting for every lock in the bundle."""
        return sum(handle.wait_ms for handle in self.handles)


class LockManager:
    """Hand out global and per-instance locks rooted at *runtime_dir*."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 30.0) -> None:
        """Initialise the manager with its lock directory and default timeout."""
        self.runtime_dir = Path(runtime_dir).expanduser()
        self.default_timeout = default_timeout

    def global_lock_path(self) -> Path:
        """Return the path of the global lock file."""
        return self.runtime_dir / GLOBAL_LOCK_NAME

    def instance_lock_path(self, name: str) -> Path:
        """Return the lock file path for instance *name*."""
        return self.runtime_dir / f"{name}.lock"

    @contextmanager
    def global_lock(self, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the global lock for the duration of the block."""
        with self._acquire(self.global_lock_path(), timeout) as handle:
            yield handle

    @contextmanager
    def instance_lock(self, name: str, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the lock for instance *name* for the duration of the block."""
        with self._acquire(self.instance_lock_path(name), timeout) as handle:
            yield handle

    @contextmanager
    def mutate_instances(
        self,
        names: Iterable[str],
        *,
        timeout: float | None = None,
    ) -> Iterator[LockBundle]:
        """Acquire the global lock, then each instance lock in sorted order."""
        with ExitStack() as stack:
            handles = [stack.enter_context(self.global_lock(timeout=timeout))]
            for name in sorted(set(names)):
                handles.append(stack.enter_context(self.instance_lock(name, timeout=timeout)))
            yield LockBundle(handles=handles)

    @contextmanager
    def _acquire(self, path: Path, timeout: float | None) -> Iterator[LockHandle]:
        limit = self.default_timeout if timeout is None else timeout
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o640)
        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Timed out after {limit:.1f}s waiting for lock {path}"
                        ) from None
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            self._write_metadata(fd, path)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @staticmethod
    def _write_metadata(fd: int, path: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "path": str(path),
            "acquired_at": datetime.now(UTC).isoformat(),
        }
        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, json.dumps(payload).encode("utf-8"))


__all__ = ["LockBundle", "LockHandle", "LockManager", "LockTimeoutError"]
