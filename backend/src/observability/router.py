"""Operational endpoints: Prometheus scrape target and health checks."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from container import ServiceContainer
from database import get_db
from dependencies import get_container
from .health import HealthStatus, check_database, check_providers, check_redis, overall_status


router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
def health(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Per-component health. Answers 503 only when a hard dependency is down."""
    components = {
        "database": check_database(db),
        "redis": check_redis(container.redis),
        "providers": check_providers(container.registry),
    }
    status = overall_status(components)
    return JSONResponse(
        status_code=503 if status == HealthStatus.UNHEALTHY else 200,
        content={
            "status": status.value,
            "components": {name: component.to_dict() for name, component in components.items()},
        },
    )


@router.get("/ready")
def ready(db: Session = Depends(get_db)) -> JSONResponse:
    database = check_database(db)
    if database.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content={"status": "not_ready", "message": database.message})
    return JSONResponse(content={"status": "ready"})
