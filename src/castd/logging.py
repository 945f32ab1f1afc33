"""Structured operation logging for castd.

Every CLI operation produces exactly one JSON record appended to
``operations.jsonl`` in the configured logs directory, plus a one-line human
readable summary in ``castd.log``. Records carry the command, its arguments,
the target, the ordered list of steps that ran (with their status) and the
final result.

Logging must never break an operation: when the log directory cannot be
created or written the logger disables itself and subsequent operations
silently skip persistence.
"""
from __future__ import annotations

import json
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

OPERATIONS_LOG = "operations.jsonl"
HUMAN_LOG = "castd.log"


def _sanitize(value: object) -> object:
    """Return a JSON-safe representation of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _as_list(values: Iterable[object] | None) -> list[object]:
    if values is None:
        return []
    return [_sanitize(item) for item in values]


class OperationScope:
    """Collects steps and the outcome of a single logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Bind the scope to *logger* for *command*."""
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: dict[str, object] | None = None
        self._started = time.monotonic()
        self._started_at = datetime.now(UTC).isoformat()

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record a named step with its status."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its locks."""
        self.lock_wait_ms = int(wait_ms)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[object] | None = None,
        backups: Iterable[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            backups=backups,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[object] | None = None,
        errors: Iterable[object] | None = None,
        changed: int = 0,
        backups: Iterable[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            backups=backups,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[object] | None = None,
        rc: int | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=changed,
            warnings=None,
            errors=errors if errors else [message],
            backups=None,
            context=context,
            rc=rc,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Iterable[object] | None,
        errors: Iterable[object] | None,
        backups: Iterable[object] | None,
        context: Mapping[str, object] | None,
        rc: int | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": _as_list(warnings),
            "errors": _as_list(errors),
            "backups": _as_list(backups),
            "context": _sanitize(dict(context or {})),
        }
        if rc is not None:
            result["rc"] = rc
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing this operation."""
        return {
            "op_id": self.op_id,
            "started_at": self._started_at,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "lock_wait_ms": self.lock_wait_ms,
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "steps": _sanitize(self.steps),
            "result": self.result,
        }


class StructuredLogger:
    """Append-only JSON operation log."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare the log directory, disabling persistence when unavailable."""
        self.logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG
        self._human_log_path = self.logs_dir / HUMAN_LOG
        self._enabled = True
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Open a logged operation scope and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__)
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        result = record.get("result")
        status = result.get("status") if isinstance(result, Mapping) else "unknown"
        message = result.get("message") if isinstance(result, Mapping) else ""
        summary = f"{record.get('started_at')} {record.get('command')} [{status}] {message}\n"
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
            with self._human_log_path.open("a", encoding="utf-8") as handle:
                handle.write(summary)
        except OSError:
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
