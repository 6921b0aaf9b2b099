"""StockBridge Backend - Main FastAPI Application

Multi-provider fulfillment integration service.

This module creates and configures the FastAPI application, including:
- All API routers (inventory sync, schedules, transfers, webhooks, OAuth)
- Middleware (request ID correlation, CORS)
- Exception handlers producing the shared error envelope
- Health and observability endpoints
"""

import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from container import build_container
from errors import StockBridgeError, RateLimited, TooManyRequests
from models import utcnow
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.request_id import get_request_id
from observability.router import router as observability_router
from sync.router import router as sync_router
from transfers.router import router as transfers_router, warehouses_router
from webhooks.router import router as webhooks_router
from oauth.router import router as oauth_router, connections_router
from fulfillment.router import router as fulfillment_router
from schemas.base import ErrorResponse


configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

# Documented on every API router; the handlers below produce these bodies
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (400, 401, 404, 409, 429, 500)
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service container on startup, close it on shutdown.

    A container already placed on app.state (tests) is left alone.
    """
    owned = getattr(app.state, "container", None) is None
    if owned:
        app.state.container = build_container()
    logger.info("StockBridge API starting up", extra={"environment": settings.ENVIRONMENT})

    yield

    logger.info("StockBridge API shutting down")
    if owned:
        app.state.container.close()
        app.state.container = None


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id()


def error_envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """{success: false, error, code, requestId, timestamp} plus optional details."""
    content: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "requestId": _request_id(request),
        "timestamp": utcnow().isoformat(),
    }
    if details:
        content["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def create_app() -> FastAPI:
    """Application factory. Tests build a fresh app per session."""
    app = FastAPI(
        title="StockBridge API",
        description="Unified inventory sync, warehouse transfers and webhooks across fulfillment providers",
        version="0.1.0",
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.DASHBOARD_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    @app.exception_handler(StockBridgeError)
    async def domain_exception_handler(request: Request, exc: StockBridgeError) -> JSONResponse:
        headers = None
        if isinstance(exc, (RateLimited, TooManyRequests)):
            headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after_seconds)))}

        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
            extra={"error_code": exc.code, "status": exc.status_code},
        )
        return error_envelope(request, exc.status_code, exc.code, exc.message, exc.details or None, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(
            f"Validation error on {request.method} {request.url.path}",
            extra={"errors": jsonable_encoder(exc.errors())},
        )
        return error_envelope(
            request,
            status.HTTP_400_BAD_REQUEST,
            "validation_error",
            "Request validation failed",
            {"errors": exc.errors()},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = "not_found" if exc.status_code == 404 else "http_error"
        return error_envelope(request, exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
        return error_envelope(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "database_error",
            "A database error occurred. Please try again later.",
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
        return error_envelope(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "An unexpected error occurred. Please try again later.",
        )

    app.include_router(observability_router)
    for api_router in (
        sync_router,
        transfers_router,
        warehouses_router,
        webhooks_router,
        oauth_router,
        connections_router,
        fulfillment_router,
    ):
        app.include_router(api_router, responses=ERROR_RESPONSES)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {"name": "StockBridge API", "version": "0.1.0", "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
