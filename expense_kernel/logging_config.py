"""
Structured JSON logging for the expense kernel.

Every record becomes one JSON line:

    {"ts": ..., "level": "INFO", "logger": "expense_kernel.services.claims",
     "message": "claim_submitted", "claim_id": ..., "approver_count": 2}

The envelope (ts, level, logger, message) is followed by the fields bound
in ``LogContext``, then the record's ``extra=`` payload.  Records logged
with ``exc_info`` also carry ``exc_type``, ``exc_message``, the kernel
error ``code`` as ``exc_code`` and each public exception attribute as
``exc_<name>``.

Services name events in snake_case and pass data through ``extra=``;
the message itself is never formatted.
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
from typing import Any, Iterator

_LOGGER_PREFIX = "expense_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "company_id", "claim_id", "policy_id")

# Always replaced, never mutated in place.
_context: ContextVar[dict[str, str]] = ContextVar("expense_log_context", default={})


class LogContext:
    """Request-scoped fields stamped on every log line.

    Backed by a ContextVar, so bindings follow threads and asyncio tasks.
    Only names in ``CONTEXT_FIELDS`` are kept; None values are skipped.
    """

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        merged = dict(_context.get())
        for key, value in fields.items():
            if key in CONTEXT_FIELDS and value is not None:
                merged[key] = str(value)
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Bind fields for the body of a ``with`` block, then restore."""
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


_RESERVED_KEYS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}


def _json_default(obj: Any) -> Any:
    """UUID, Decimal and anything else unknown fall back to str()."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_KEYS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.claims")`` -> ``expense_kernel.services.claims``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``expense_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging() again.  Tests only."""
    global _configured
    with _lock:
        _configured = False
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
