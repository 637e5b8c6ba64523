"""
Structured JSON logging for the contract kernel.

Every record under the ``contract_kernel`` logger tree is written as one
JSON object per line.  Request-scoped fields (correlation id, contract id,
signer type, actor, trace id) travel in a ContextVar so they follow the
request across threads and async tasks without being passed around.

Signing tokens are bearer credentials: any extra or exception attribute
named like a token is replaced with ``***`` before it is written.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

ROOT_LOGGER_NAME = "contract_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "contract_id",
    "signer_type",
    "actor_id",
    "trace_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("contract_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields.

    The whole context is one immutable mapping, so ``bind`` can restore the
    previous state exactly by resetting a single ContextVar token.  Values
    are stored as strings; unknown field names are ignored.
    """

    @staticmethod
    def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name in CONTEXT_FIELDS:
            value = fields.get(name)
            if value is not None:
                current[name] = str(value)
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields for the rest of the current context."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields inside a ``with`` block and restore the prior context on exit."""
        token = _context.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else on a record is an "extra".
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}

SECRET_FIELDS = frozenset(
    {"token", "signing_token", "client_signing_token", "speaker_signing_token"}
)
REDACTED = "***"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def _scrub(name: str, value: Any) -> Any:
    return REDACTED if name in SECRET_FIELDS else value


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: envelope, context, extras, then exception detail."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        for name, value in extras.items():
            line.setdefault(name, _scrub(name, value))

        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Kernel errors keep their structured arguments as public attributes
        for name, value in vars(exc).items():
            if name.startswith("_") or name in ("args", "code"):
                continue
            fields[f"exc_{name}"] = _scrub(name, value)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Child logger under ``contract_kernel``, e.g. ``get_logger("services.signing")``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``contract_kernel`` logger.

    Only the first call has an effect until ``reset_logging`` is called.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        _installed_handler = handler

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` again (tests only)."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
