"""
Structured JSON logging for the ledger kernel.

Every record under the ``ledger_kernel`` logger tree is written as one JSON
object per line:

    {"ts": "...", "level": "INFO", "logger": "ledger_kernel.services.company",
     "message": "company_created", "correlation_id": "...", "company_id": 7}

Fields come from three places, in this order of precedence:
    1. the fixed keys (ts, level, logger, message)
    2. LogContext: correlation_id, actor_id, entity_type, entity_id
    3. the ``extra=`` mapping of the logging call

A logged LedgerKernelError contributes its code and structured attributes
as ``exc_*`` keys, so an operator can filter on ``exc_invariant`` without
parsing messages.
"""

__all__ = [
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from typing import Any

LOGGER_ROOT = "ledger_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "entity_type", "entity_id")

_context: ContextVar[dict[str, str] | None] = ContextVar("ledger_log_context", default=None)


class LogContext:
    """
    Fields stamped on every record logged from the current thread or task.

    Usage:
        with LogContext.bind(correlation_id=str(uuid4())):
            db.with_transaction(...)
    """

    @staticmethod
    def _known(fields: dict[str, Any]) -> dict[str, str]:
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(unknown)}")
        return {k: str(v) for k, v in fields.items() if v is not None}

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get() or {})

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Update the given fields; None leaves a field as it was."""
        _context.set({**cls.get_all(), **cls._known(fields)})

    @classmethod
    def clear(cls) -> None:
        _context.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the old ones."""
        token = _context.set({**cls.get_all(), **cls._known(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal and anything else without a JSON form
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; see the module docstring for the keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.company")`` -> ``ledger_kernel.services.company``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_configured = False
_config_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``ledger_kernel`` logger.

    Only the first call has any effect; later calls (every LedgerDatabase
    makes one) leave the existing setup alone.  Records do not propagate
    to the root logger.
    """
    global _configured
    with _config_lock:
        if _configured:
            return
        _configured = True

    out = handler or logging.StreamHandler(stream or sys.stderr)
    out.setFormatter(StructuredFormatter())
    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(out)


def reset_logging() -> None:
    """Undo configure_logging.  Tests only."""
    global _configured
    with _config_lock:
        _configured = False
    root = logging.getLogger(LOGGER_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
