"""Logging, request correlation, Prometheus metrics and health checks."""

from .logging_config import configure_logging, get_logger
from .request_id import (
    request_id_var,
    get_request_id,
    set_request_id,
    generate_request_id,
    ensure_request_id,
    request_id_scope,
)
from .health import HealthStatus, ComponentHealth, overall_status
from .middleware import RequestIDMiddleware

__all__ = [
    "configure_logging",
    "get_logger",
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    "ensure_request_id",
    "request_id_scope",
    "HealthStatus",
    "ComponentHealth",
    "overall_status",
    "RequestIDMiddleware",
]
