"""
Structured JSON logging for the checkout kernel.

Every record is one JSON object on one line:

    {"ts": ..., "level": "WARNING", "logger": "checkout_kernel.services...",
     "message": "create_intent_failed", "correlation_id": ..., "user_id": ...,
     "error_code": "INSUFFICIENT_STOCK", "variant_id": "V-MUG",
     "requested": 2, "available": 1, ...}

Key order of precedence (first writer wins):
    1. Envelope: ts, level, logger, message.
    2. LogContext fields bound by the orchestrator / reaper for the
       operation in flight (correlation_id, intent_id, user_id, actor_id,
       trace_id).
    3. ``extra`` passed at the call site.
    4. The attached exception.  A CheckoutKernelError is a business outcome:
       its ``code`` becomes ``error_code`` and its structured attributes
       (variant_id, requested, available, current_status, target_status, ...)
       become top-level keys, so a refused reservation is queried the same
       way as a granted one.  Any other exception is a fault and keeps its
       traceback.
"""

from __future__ import annotations

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from checkout_kernel.exceptions import CheckoutKernelError

_LOGGER_PREFIX = "checkout_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "intent_id",
    "user_id",
    "actor_id",
    "trace_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"checkout_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")


class LogContext:
    """Operation-scoped log fields, carried in context variables."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context.  None values are skipped."""
        _check_fields(fields)
        for name, value in fields.items():
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a block, restoring the previous values on exit."""
        _check_fields(fields)
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    return repr(obj)


def _error_fields(exc: CheckoutKernelError) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "error_code": exc.code,
        "error": type(exc).__name__,
        "error_message": str(exc),
    }
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[name] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; see the module docstring for the layout."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, value in LogContext.get_all().items():
            payload.setdefault(name, value)
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        exc = record.exc_info[1] if record.exc_info else None
        if isinstance(exc, CheckoutKernelError):
            for name, value in _error_fields(exc).items():
                payload.setdefault(name, value)
        elif exc is not None:
            payload["error"] = type(exc).__name__
            payload["error_message"] = str(exc)
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the checkout_kernel namespace, e.g. ``get_logger("services.stock_ledger")``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_lock = threading.Lock()
_installed: logging.Handler | None = None


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    try:
        return logging.getLevelNamesMapping()[level.upper()]
    except KeyError:
        raise ValueError(f"unknown log level: {level!r}") from None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the checkout_kernel logger.

    Idempotent: once a handler is installed, later calls are no-ops until
    reset_logging().  Records do not propagate to the root logger, so the
    host application's own logging setup never double-prints them.
    """
    global _installed
    resolved = _resolve_level(level)
    with _lock:
        if _installed is not None:
            return
        _installed = handler or logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(resolved)
        root.propagate = False
        root.addHandler(_installed)


def reset_logging() -> None:
    """Remove the handler configure_logging() installed.  Tests only."""
    global _installed
    with _lock:
        root = logging.getLogger(_LOGGER_PREFIX)
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.WARNING)
