"""Request correlation and access logging for the HTTP API."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from .logging_config import get_logger
from .metrics import http_request_seconds, http_requests_total
from .request_id import generate_request_id, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes and the scrape target would drown out API traffic in the access log
QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})


def route_template(request: Request) -> str:
    """Path template ("/warehouse/transfer/{transfer_id}") so metric labels stay bounded."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind X-Request-ID (caller-supplied or generated) for the whole request.

    The id is echoed on the response and stored on request.state so handlers
    can pass it to the orchestrator. Authenticated requests also log the
    seller resolved by the API key dependency.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        route = route_template(request)

        try:
            response = await call_next(request)
        except Exception:
            http_requests_total.labels(method=request.method, route=route, status="500").inc()
            logger.exception(
                f"{request.method} {request.url.path} raised",
                extra={"operation": "http_request", "status": 500},
            )
            raise
        else:
            elapsed = time.perf_counter() - started
            http_requests_total.labels(method=request.method, route=route, status=str(response.status_code)).inc()
            http_request_seconds.labels(method=request.method, route=route).observe(elapsed)
            if request.url.path not in QUIET_PATHS:
                logger.info(
                    f"{request.method} {request.url.path} -> {response.status_code}",
                    extra={
                        "operation": "http_request",
                        "status": response.status_code,
                        "latency_ms": round(elapsed * 1000, 2),
                        "seller_id": getattr(request.state, "seller_id", None),
                    },
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)
