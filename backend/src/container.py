"""Process-wide service container.

Built once by the process bootstrap (FastAPI lifespan or Celery worker init)
and torn down on shutdown. Long-lived handles (HTTP client, provider registry,
vault, worker pool, Redis) live here; per-request services are built from a
database session through the factory methods.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from auth.rate_limit import RateLimiter, connect_redis
from config import Settings, get_settings
from fulfillment import FulfillmentOrchestrator, ProviderConcurrencyLimiter
from models import utcnow
from notifications import NotificationSender, LoggingNotificationSender, HttpNotificationSender
from oauth import OAuthConnector
from providers import ProviderRegistry, build_default_registry
from sync.backoff import BackoffPolicy
from sync.progress import SyncProgressTracker
from sync.schedule_manager import SyncScheduleManager
from transfers import WarehouseTransferService
from vault import CredentialCipher, CredentialVault
from webhooks import WebhookDispatcher, WebhookGateway


logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass
class ServiceContainer:
    settings: Settings
    session_factory: sessionmaker
    http_client: httpx.Client
    registry: ProviderRegistry
    vault: CredentialVault
    notifier: NotificationSender
    rate_limiter: RateLimiter
    limiter: ProviderConcurrencyLimiter
    executor: ThreadPoolExecutor
    redis: Optional[Redis] = None
    clock: Callable[[], datetime] = utcnow
    owns_http_client: bool = field(default=True, repr=False)

    def backoff_policy(self, max_attempts: Optional[int] = None) -> BackoffPolicy:
        return BackoffPolicy(
            base_seconds=self.settings.BACKOFF_BASE_SECONDS,
            cap_seconds=self.settings.BACKOFF_CAP_SECONDS,
            jitter=self.settings.BACKOFF_JITTER,
            max_attempts=max_attempts or self.settings.WEBHOOK_MAX_ATTEMPTS,
        )

    def tracker(self, db: Session) -> SyncProgressTracker:
        return SyncProgressTracker(db, lease_seconds=self.settings.SYNC_LOCK_LEASE_SECONDS, clock=self.clock)

    def orchestrator(self, db: Session) -> FulfillmentOrchestrator:
        return FulfillmentOrchestrator(
            db,
            registry=self.registry,
            vault=self.vault,
            tracker=self.tracker(db),
            executor=self.executor,
            limiter=self.limiter,
            notifier=self.notifier,
            clock=self.clock,
        )

    def schedule_manager(self, db: Session) -> SyncScheduleManager:
        return SyncScheduleManager(
            db,
            orchestrator=self.orchestrator(db),
            backoff=self.backoff_policy(),
            notifier=self.notifier,
            clock=self.clock,
        )

    def dispatcher(self, db: Session) -> WebhookDispatcher:
        return WebhookDispatcher(
            db,
            http_client=self.http_client,
            executor=self.executor,
            backoff=self.backoff_policy(self.settings.WEBHOOK_MAX_ATTEMPTS),
            timeout_seconds=self.settings.SUBSCRIBER_TIMEOUT_SECONDS,
            clock=self.clock,
        )

    def gateway(self, db: Session) -> WebhookGateway:
        return WebhookGateway(
            db,
            registry=self.registry,
            settings=self.settings,
            dispatcher=self.dispatcher(db),
            tracker=self.tracker(db),
            clock=self.clock,
        )

    def transfer_service(self, db: Session) -> WarehouseTransferService:
        return WarehouseTransferService(
            db,
            registry=self.registry,
            vault=self.vault,
            tracker=self.tracker(db),
            dispatcher=self.dispatcher(db),
            notifier=self.notifier,
            unit_fee=self.settings.TRANSFER_UNIT_FEE,
            stock_lease_seconds=self.settings.STOCK_LOCK_LEASE_SECONDS,
            processing_timeout_seconds=self.settings.TRANSFER_PROCESSING_TIMEOUT_SECONDS,
            clock=self.clock,
        )

    def oauth_connector(self, db: Session) -> OAuthConnector:
        return OAuthConnector(db, registry=self.registry, vault=self.vault, settings=self.settings, clock=self.clock)

    def close(self) -> None:
        self.executor.shutdown(wait=True)
        if self.owns_http_client:
            self.http_client.close()
        if self.redis is not None:
            self.redis.close()
        logger.info("Service container closed")


def build_container(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    http_client: Optional[httpx.Client] = None,
    registry: Optional[ProviderRegistry] = None,
    notifier: Optional[NotificationSender] = None,
    redis_client: Any = _UNSET,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceContainer:
    """Wire the container. Every argument overrides the production default."""
    settings = settings or get_settings()
    if session_factory is None:
        from database import SessionLocal
        session_factory = SessionLocal

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.Client(
            timeout=httpx.Timeout(settings.PROVIDER_TIMEOUT_SECONDS),
            headers={"User-Agent": "StockBridge/1.0"},
        )

    if notifier is None:
        if settings.NOTIFICATION_SERVICE_URL:
            notifier = HttpNotificationSender(http_client, settings.NOTIFICATION_SERVICE_URL)
        else:
            notifier = LoggingNotificationSender()

    redis_client = connect_redis(settings.REDIS_URL) if redis_client is _UNSET else redis_client
    workers = max(4, settings.PROVIDER_MAX_CONCURRENCY * max(1, len(settings.enabled_providers)))

    return ServiceContainer(
        settings=settings,
        session_factory=session_factory,
        http_client=http_client,
        registry=registry or build_default_registry(http_client, settings),
        vault=CredentialVault(CredentialCipher(settings.ENCRYPTION_KEY), clock=clock),
        notifier=notifier,
        rate_limiter=RateLimiter(redis_client, settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_PERIOD),
        limiter=ProviderConcurrencyLimiter(settings.PROVIDER_MAX_CONCURRENCY),
        executor=ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stockbridge-io"),
        redis=redis_client,
        clock=clock,
        owns_http_client=owns_http_client,
    )
