"""
Logging setup for the API process.

Development gets plain single-line records. Production gets one JSON object
per record, carrying the current request id and any structured ``extra=``
fields the code attached.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from assessments.core.config import settings

# Set per request by RequestLoggingMiddleware; read by JSONFormatter and by
# the error envelope builders.
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

STRUCTURED_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_host",
    "test_type",
    "session_id",
    "route_class",
    "error_id",
)

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = request_id_context.get()
        if request_id:
            entry["request_id"] = request_id

        entry.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        )

        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _quiet(level: int) -> Dict[str, Any]:
    return {"level": level, "handlers": ["console"], "propagate": False}


def setup_logging() -> None:
    """Apply the dictConfig for the current ``settings``."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {"format": PLAIN_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
                "json": {"()": JSONFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "json" if settings.ENV == "production" else "plain",
                    "stream": sys.stdout,
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                # no handler of its own; records reach the root console handler
                "assessments": {"level": level},
                "uvicorn.access": _quiet(logging.WARNING if settings.DEBUG else logging.INFO),
                "sqlalchemy.engine": _quiet(logging.WARNING),
            },
        }
    )
