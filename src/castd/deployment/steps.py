"""Step helpers shared by the deployment pipelines.

Pipelines abort on the first failing step. Teardown-style steps that must not
stop the pipeline go through :func:`best_effort`, which logs the failure,
records it as a ``warning`` step and carries on.
"""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from .errors import DeploymentError

if TYPE_CHECKING:
    from ..logging import OperationScope
else:  # pragma: no cover - typing helper only
    OperationScope = object  # type: ignore[misc]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

BEST_EFFORT_ERRORS: tuple[type[BaseException], ...] = (DeploymentError, OSError, subprocess.SubprocessError)


def record_step(
    op: OperationScope | None,
    name: str,
    *,
    status: str = "success",
    detail: object | None = None,
) -> None:
    """Add a step to *op* when an operation scope is attached."""
    if op is None:
        return
    op.add_step(name, status=status, detail=None if detail is None else str(detail))


def best_effort(
    op: OperationScope | None,
    name: str,
    func: Callable[..., T],
    *args: object,
) -> T | None:
    """Run *func* and downgrade deployment/filesystem failures to warnings."""
    try:
        result = func(*args)
    except BEST_EFFORT_ERRORS as exc:
        LOGGER.warning("Ignoring failure in %s: %s", name, exc)
        record_step(op, name, status="warning", detail=exc)
        return None
    record_step(op, name)
    return result


__all__ = ["best_effort", "record_step"]
