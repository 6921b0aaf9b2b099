"""Dependency checks behind GET /health and GET /ready.

The database is the only hard dependency. Redis backs the inbound rate
limiter, which fails open, so losing it degrades the service instead of
taking it down. The provider registry is checked so a deployment with every
provider disabled shows up as unhealthy rather than silently syncing nothing.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .logging_config import get_logger

if TYPE_CHECKING:
    from providers import ProviderRegistry

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status.value, "message": self.message, "latency_ms": self.latency_ms}
        if self.details:
            body.update(self.details)
        return body


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def check_database(db: Session) -> ComponentHealth:
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", extra={"operation": "health_check", "error_code": type(e).__name__})
        return ComponentHealth(HealthStatus.UNHEALTHY, f"Database unreachable: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Database reachable", _elapsed_ms(started))


def check_redis(client: Optional[Redis]) -> ComponentHealth:
    if client is None:
        return ComponentHealth(HealthStatus.DEGRADED, "Redis not configured; rate limiting disabled")

    started = time.perf_counter()
    try:
        client.ping()
    except RedisError as e:
        logger.warning("Redis health check failed", extra={"operation": "health_check", "error_code": type(e).__name__})
        return ComponentHealth(HealthStatus.DEGRADED, f"Redis unreachable; rate limiting disabled: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Redis reachable", _elapsed_ms(started))


def check_providers(registry: "ProviderRegistry") -> ComponentHealth:
    providers = registry.list_available()
    if not providers:
        return ComponentHealth(HealthStatus.UNHEALTHY, "No fulfillment providers enabled")
    return ComponentHealth(HealthStatus.HEALTHY, f"{len(providers)} provider(s) enabled", details={"providers": providers})


def overall_status(components: Dict[str, ComponentHealth]) -> HealthStatus:
    statuses = {c.status for c in components.values()}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
