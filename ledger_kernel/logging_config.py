"""
Structured logging for the ledger kernel.

Responsibility:
    One JSON object per log line.  Every line carries the timestamp, level,
    logger name and the snake_case event name as ``message``, plus whatever
    ledger context is bound (tenant, actor, correlation id, POS session) and
    the ``extra`` fields of the call.  Typed kernel errors logged with
    ``logger.exception`` are flattened into ``exc_*`` keys.

Architecture position:
    Kernel > infrastructure.  Imported by every service; imports nothing
    from the rest of the package.

Invariants enforced:
    - Only the fields in CONTEXT_FIELDS can be bound; anything else is a
      programming error and raises TypeError.
    - ``LogContext.bind`` always restores the previous values on exit, also
      when the block raises.
    - Decimals are written as strings so amounts never lose precision.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

CONTEXT_FIELDS = ("tenant_id", "actor_id", "correlation_id", "session_id")

_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default={})


def _checked(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
    return {k: str(v) for k, v in fields.items() if v is not None}


class LogContext:
    """Ledger fields attached to every record logged in the current context."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge non-None fields into the current context."""
        _context.set({**_context.get(), **_checked(fields)})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Bind fields for the duration of a ``with`` block."""
        token = _context.set({**_context.get(), **_checked(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Renders a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


_ROOT = "ledger_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``ledger_kernel.`` namespace, e.g. ``services.period``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``ledger_kernel`` logger.  Idempotent: only
    the first call in a process has an effect until ``reset_logging()``.

    ``level`` accepts a number or a level name such as ``"DEBUG"``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Remove ledger_kernel handlers and allow reconfiguration.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
