"""
Structured logging for business events.

Every entry is one JSON line. The correlation id lives in a context variable:
the HTTP middleware sets it per request, and tasks created while handling the
request (catalog jobs) inherit it, so a job's log lines share the id of the
call that started it.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

CORRELATION_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def _json_default(value: Any) -> Any:
    """Serialize values json does not know about (Decimal, datetime, enums)."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


def generate_correlation_id() -> str:
    return f"CORR_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


class StructuredLogger:
    """Logger that writes JSON entries with correlation id and bound context."""

    def __init__(self, logger_name: str, **bound: Any):
        self.logger = logging.getLogger(logger_name)
        self._bound = bound

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger that adds ``context`` to every entry."""
        return StructuredLogger(self.logger.name, **{**self._bound, **context})

    def _format_message(self, level: str, message: str, **kwargs) -> dict:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self.logger.name,
            "message": message,
            "correlation_id": get_correlation_id() or "none",
        }

        context = {**self._bound, **kwargs}
        if context:
            log_entry["context"] = context

        return log_entry

    def _emit(self, level: int, message: str, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        entry = self._format_message(logging.getLevelName(level), message, **kwargs)
        self.logger.log(level, json.dumps(entry, default=_json_default))

    def info(self, message: str, **kwargs):
        self._emit(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._emit(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._emit(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._emit(logging.DEBUG, message, **kwargs)


def get_structured_logger(name: str) -> StructuredLogger:
    """Get a structured logger for ``name``."""
    return StructuredLogger(name)
