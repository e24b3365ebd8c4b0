"""Root logger setup shared by the API process and the worker.

Text output is the default; LOG_JSON=true switches to JSON Lines so log
shipping can index fields without parsing.  The handler filter stamps
the current request_id on every record, and the access line written by
RequestContextMiddleware adds method, path, status_code and duration_ms.

Domain code passes user, course and enrollment ids as %-style arguments
(``logger.info("Enrolled user=%s course=%s", ...)``).  Grepping one id
through either format gives the history of that entity within a request.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime

# Set per request by RequestContextMiddleware; "-" outside a request.
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Loggers that stay at WARNING even when the service runs at DEBUG.
_NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpcore",
    "httpx",
    "sqlalchemy.engine",
)


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        return True


def _iso_millis(record: logging.LogRecord) -> str:
    """2024-05-01T09:30:00.123+0000, in the host's local offset."""
    stamp = datetime.fromtimestamp(record.created).astimezone()
    return f"{stamp:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}{stamp:%z}"


class _ContainerFormatter(logging.Formatter):
    """One line per record; WARNING and above also name the source line."""

    def __init__(self) -> None:
        super().__init__()
        self._plain = logging.Formatter("%(stamp)s %(levelname)-8s %(name)s  %(message)s")
        self._located = logging.Formatter(
            "%(stamp)s %(levelname)-8s %(name)s  %(message)s  [%(filename)s:%(lineno)d]"
        )

    def format(self, record: logging.LogRecord) -> str:
        record.stamp = _iso_millis(record)  # type: ignore[attr-defined]
        chosen = self._located if record.levelno >= logging.WARNING else self._plain
        return chosen.format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines output with request and domain context as top-level keys."""

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "user_id",
        "course_id",
        "enrollment_id",
        "error_code",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": _iso_millis(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in self._CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send all records to stdout at ``level_name`` (unknown names mean INFO)."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(_RequestIdFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
