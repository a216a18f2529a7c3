"""Logging setup with operation context propagation.

Records emitted while a key is loaded or a response is built carry the
operation name, key role and sealed record path, so a single log line is
enough to tell which file a failure refers to. Logged ``EnclaveError``s also
report their ``kind``.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from tonteeton.errors import EnclaveError


@dataclass(frozen=True, slots=True)
class OperationContext:
    operation: str | None = None
    key_role: str | None = None
    record_path: str | None = None


_EMPTY_CONTEXT = OperationContext()
_OPERATION_CONTEXT: contextvars.ContextVar[OperationContext | None] = contextvars.ContextVar(
    "tonteeton_operation_context",
    default=None,
)


def get_operation_context() -> OperationContext:
    context = _OPERATION_CONTEXT.get()
    if context is None:
        return _EMPTY_CONTEXT
    return context


class OperationFilter(logging.Filter):
    """Inject operation fields into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_operation_context()
        record.operation = context.operation
        record.key_role = context.key_role
        record.record_path = context.record_path
        return True


class _JsonFormatter(logging.Formatter):
    """Render logs as compact JSON for machine-readable ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "operation": getattr(record, "operation", None),
            "key_role": getattr(record, "key_role", None),
            "record_path": getattr(record, "record_path", None),
        }
        if record.exc_info is not None:
            error = record.exc_info[1]
            if isinstance(error, EnclaveError):
                payload["error_kind"] = str(error.kind)
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging once with operation-aware handlers."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    if json_output:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s "
            "operation=%(operation)s key_role=%(key_role)s record=%(record_path)s "
            "%(message)s",
        )
    handler.setFormatter(formatter)

    operation_filter = OperationFilter()
    handler.addFilter(operation_filter)
    root_logger.addFilter(operation_filter)
    root_logger.addHandler(handler)


@contextmanager
def operation_scope(
    *,
    operation: str | None = None,
    key_role: str | None = None,
    record_path: Path | str | None = None,
) -> Iterator[None]:
    """Temporarily tag log records in the current context.

    Nested scopes inherit outer values unless explicitly overridden.
    """

    current = get_operation_context()
    updated = OperationContext(
        operation=current.operation if operation is None else operation,
        key_role=current.key_role if key_role is None else key_role,
        record_path=current.record_path if record_path is None else str(record_path),
    )
    token = _OPERATION_CONTEXT.set(updated)
    try:
        yield
    finally:
        _OPERATION_CONTEXT.reset(token)


__all__ = [
    "OperationContext",
    "OperationFilter",
    "get_operation_context",
    "operation_scope",
    "setup_logging",
]
