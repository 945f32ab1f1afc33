"""Lifecycle hook execution.

Bundles may ship executable scripts under ``hooks/`` that run at fixed points
of the instance lifecycle (``post_prepare``, ``pre_version_activate``,
``post_version_activate``). Hooks run synchronously with the version
directory as working directory and receive the lifecycle arguments on
``argv``.
"""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from .errors import HookError

LOGGER = logging.getLogger(__name__)

HOOKS_DIR = "hooks"
INSTANCE_ENV_VAR = "CAST_INSTANCE_NAME"


class InstanceHook:
    """A single named hook script belonging to an instance version."""

    def __init__(
        self,
        phase: str,
        name: str,
        working_dir: Path,
        must_exist: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Describe hook *name* for *phase* rooted at *working_dir*."""
        self.phase = phase
        self.name = name
        self.working_dir = Path(working_dir)
        self.must_exist = must_exist
        self.env = dict(env or {})

    @property
    def path(self) -> Path:
        """Location of the hook script."""
        return self.working_dir / HOOKS_DIR / self.name

    def execute(
        self,
        stdin: str | None = None,
        argv: Sequence[str] = (),
    ) -> subprocess.CompletedProcess[str] | None:
        """Run the hook, returning ``None`` when an optional hook is absent."""
        script = self.path
        if not script.is_file():
            if self.must_exist:
                raise HookError(f"Required hook '{self.name}' not found at {script}")
            LOGGER.debug("Hook %s not present at %s; skipping", self.name, script)
            return None
        if not os.access(script, os.X_OK):
            raise HookError(f"Hook '{self.name}' at {script} is not executable")

        env_vars = os.environ.copy()
        env_vars.update(self.env)
        env_vars["CAST_HOOK_PHASE"] = self.phase
        env_vars["CAST_HOOK_NAME"] = self.name

        cmd = [str(script), *[str(arg) for arg in argv]]
        LOGGER.debug("Running hook %s: %s", self.name, cmd)
        try:
            result = self._run(cmd, stdin=stdin, env=env_vars)
        except OSError as exc:
            raise HookError(f"Hook '{self.name}' could not be started: {exc}") from exc
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            stdout = (result.stdout or "").strip()
            message = stderr or stdout or "no output"
            raise HookError(
                f"Hook '{self.name}' failed (exit {result.returncode}): {message}",
                returncode=result.returncode,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
            )
        return result

    def _run(
        self,
        cmd: Sequence[str],
        *,
        stdin: str | None,
        env: Mapping[str, str],
    ) -> subprocess.CompletedProcess[str]:
        """Execute the hook command (isolated for testing)."""
        return subprocess.run(  # noqa: S603
            list(cmd),
            cwd=str(self.working_dir),
            input=stdin,
            capture_output=True,
            text=True,
            errors="replace",
            env=dict(env),
            check=False,
        )


__all__ = ["INSTANCE_ENV_VAR", "InstanceHook"]
