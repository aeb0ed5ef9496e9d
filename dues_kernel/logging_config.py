"""
Structured JSON logging for the dues ledger.

Every record under the ``dues_kernel`` logger tree is written as one JSON
object per line.  A line carries the timestamp, level, logger and message,
then the request-scoped fields held by ``LogContext`` (who is acting, on
which semester), then whatever the call site passed in ``extra``.  When a
record carries an exception, its type, message, traceback and, for ledger
errors, the machine-readable ``code`` plus every public attribute are added
with an ``exc_`` prefix.

Nothing here touches the root logger; the CLI or host application decides
where lines go by handing a handler to ``configure_logging()``.
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

LOGGER_ROOT = "dues_kernel"

# Request-scoped fields, in the order they appear on a log line
CONTEXT_FIELDS = ("correlation_id", "request_id", "actor_id", "semester_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"dues_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped log fields backed by contextvars.

    Safe across threads and asyncio tasks.  ``bind()`` is the usual entry
    point: the facade wraps each write in it so every line emitted by the
    services underneath carries the actor and semester.
    """

    @staticmethod
    def _var(name: str) -> ContextVar[str | None]:
        try:
            return _context_vars[name]
        except KeyError:
            raise TypeError(f"unknown log context field: {name!r}") from None

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given fields; None leaves a field untouched."""
        for name, value in fields.items():
            var = cls._var(name)
            if value is not None:
                var.set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name in CONTEXT_FIELDS
            if (value := _context_vars[name].get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore prior values."""
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        for name, value in fields.items():
            var = cls._var(name)
            if value is not None:
                tokens.append((var, var.set(value)))
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Money keeps its scale in logs: 20.50 stays "20.50"
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(LogContext.get_all())
        line.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in line
        )
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record.exc_info))
        return json.dumps(line, default=_json_default)

    def _exception_fields(self, exc_info) -> dict[str, Any]:
        exc = exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # DuesKernelError subclasses keep their details as plain attributes
        for attr, value in vars(exc).items():
            if not attr.startswith("_") and attr not in ("args", "code"):
                fields[f"exc_{attr}"] = value
        fields["traceback"] = self.formatException(exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``dues_kernel`` tree, e.g. ``get_logger("services.payment_recorder")``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``dues_kernel`` tree.

    Only the first call has an effect; later calls (the engine module calls
    this on init) are no-ops so an application's own setup is never
    clobbered.  Records do not propagate to the root logger.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    tree = logging.getLogger(LOGGER_ROOT)
    tree.setLevel(level)
    tree.propagate = False
    tree.addHandler(handler)


def reset_logging() -> None:
    """Drop the configured handler so the next configure_logging() applies. Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
    tree = logging.getLogger(LOGGER_ROOT)
    for handler in list(tree.handlers):
        tree.removeHandler(handler)
        handler.close()
    tree.setLevel(logging.WARNING)
