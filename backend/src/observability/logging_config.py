"""Logging setup shared by the API process and Celery workers.

Records are emitted as one JSON document per line. Domain code passes
correlation fields through ``extra={...}``; the ones listed in CONTEXT_FIELDS
are lifted into the document so logs can be filtered by seller, provider,
sync run, transfer or webhook event.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .request_id import get_request_id

CONTEXT_FIELDS = (
    "seller_id",
    "provider",
    "sync_run_id",
    "schedule_id",
    "transfer_id",
    "event_id",
    "delivery_id",
    "operation",
    "status",
    "error_code",
    "latency_ms",
    "security_event",
)

# Third-party loggers that are too chatty at INFO
LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "apscheduler": logging.WARNING,
    "celery.beat": logging.INFO,
}

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"


class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        document = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "message": record.getMessage(),
        }
        document.update(
            (name, _jsonable(getattr(record, name)))
            for name in CONTEXT_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            document["error"] = str(record.exc_info[1])
            document["traceback"] = self.formatException(record.exc_info)
        return json.dumps(document)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    Called once at API startup and from the Celery ``setup_logging`` signal,
    so both processes log in the same shape.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
