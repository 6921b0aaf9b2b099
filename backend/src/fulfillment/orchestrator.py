"""
Fulfillment Orchestrator - fans inventory syncs out to providers

Handles the complete sync workflow:
- Provider name validation at the boundary
- Per-(seller, provider) run lock via SyncProgressTracker
- Credential resolution through the CredentialVault
- Concurrent provider calls on the shared worker pool (per-provider cap)
- Independent per-provider outcomes (one failure never aborts another)
- Inventory mirror update and run completion

All database work happens on the calling thread; only the provider calls run
on the worker pool.
"""

import logging
import time
from concurrent.futures import Executor
from contextvars import copy_context
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from errors import (
    StockBridgeError,
    ProviderAuthError,
    RateLimited,
    CredentialNotFound,
    VaultError,
    ValidationFailed,
)
from models import SyncRun, utcnow
from notifications import NotificationRequest, NotificationSender, send_safely
from observability.metrics import sync_runs_total
from observability.request_id import ensure_request_id
from providers import (
    ProviderClient,
    ProviderRegistry,
    InventoryItem,
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
)
from sync.progress import SyncProgressTracker
from vault import CredentialVault
from .inventory_mirror import apply_inventory, provider_refs_for
from .limiter import ProviderConcurrencyLimiter


logger = logging.getLogger(__name__)


@dataclass
class SyncOptions:
    full_sync: bool = False
    force_update: bool = False


@dataclass
class ProviderSyncResult:
    """Outcome of one provider within a sync request.

    status: completed | failed | skipped (another run holds the lock)
    """
    provider: str
    status: str
    sync_id: Optional[UUID] = None
    items_synced: int = 0
    items_failed: int = 0
    items_deferred: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    retry_after_seconds: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


@dataclass
class SyncRunResult:
    request_id: str
    results: list[ProviderSyncResult] = field(default_factory=list)

    @property
    def syncs(self) -> list[ProviderSyncResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failures(self) -> list[ProviderSyncResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def sync_count(self) -> int:
        return len(self.syncs)

    @property
    def fail_count(self) -> int:
        return len(self.failures)


@dataclass
class _PreparedSync:
    provider: str
    client: ProviderClient
    run: SyncRun
    credentials: dict[str, Any]
    product_refs: Optional[list[str]]


class FulfillmentOrchestrator:
    """
    Coordinates inventory syncs and fulfillment orders across providers.

    Usage:
        orchestrator = container.orchestrator(db)
        result = orchestrator.sync_inventory("seller-1", ["shipbob", "fourpx"], SyncOptions(full_sync=True))
        print(result.sync_count, result.fail_count)
    """

    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry,
        vault: CredentialVault,
        tracker: SyncProgressTracker,
        executor: Executor,
        limiter: ProviderConcurrencyLimiter,
        notifier: Optional[NotificationSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.vault = vault
        self.tracker = tracker
        self.executor = executor
        self.limiter = limiter
        self.notifier = notifier
        self.clock = clock

    def sync_inventory(
        self,
        seller_id: str,
        provider_names: list[str],
        options: Optional[SyncOptions] = None,
        request_id: Optional[str] = None,
        schedule_id: Optional[UUID] = None,
        trigger: str = "manual",
    ) -> SyncRunResult:
        """
        Sync inventory from each requested provider.

        Raises:
            UnknownProvider: A name is not registered (nothing is started)
            ValidationFailed: No provider names given
        """
        options = options or SyncOptions()
        request_id = ensure_request_id(request_id)
        names = self.registry.validate(provider_names)
        if not names:
            raise ValidationFailed("At least one provider is required")

        results: dict[str, ProviderSyncResult] = {}
        prepared: list[_PreparedSync] = []
        for name in names:
            outcome = self._prepare(seller_id, name, options, request_id, schedule_id, trigger)
            if isinstance(outcome, ProviderSyncResult):
                results[name] = outcome
            else:
                prepared.append(outcome)

        # copy_context per submit so worker log records keep the request id
        futures = [
            (prep, self.executor.submit(copy_context().run, self._fetch_inventory, prep))
            for prep in prepared
        ]
        for prep, future in futures:
            try:
                items = future.result()
            except Exception as e:
                results[prep.provider] = self._fail(prep.run, e)
            else:
                results[prep.provider] = self._complete(prep, items, options)

        result = SyncRunResult(request_id=request_id, results=[results[name] for name in names])
        logger.info(
            f"Inventory sync finished: {result.sync_count} succeeded, {result.fail_count} failed",
            extra={"seller_id": seller_id, "operation": "sync_inventory"},
        )
        return result

    def _prepare(
        self,
        seller_id: str,
        provider: str,
        options: SyncOptions,
        request_id: str,
        schedule_id: Optional[UUID],
        trigger: str,
    ):
        run = self.tracker.start_run(
            seller_id, provider,
            schedule_id=schedule_id,
            request_id=request_id,
            trigger=trigger,
            now=self.clock(),
        )
        if run is None:
            sync_runs_total.labels(provider=provider, status="skipped").inc()
            return ProviderSyncResult(
                provider=provider,
                status="skipped",
                error="A sync for this provider is already running",
                error_code="sync_in_progress",
            )

        try:
            credential = self.vault.get(self.db, seller_id, provider)
        except (CredentialNotFound, ProviderAuthError, VaultError) as e:
            return self._fail(run, e)

        product_refs = None
        if not options.full_sync:
            product_refs = provider_refs_for(self.db, seller_id, provider)

        return _PreparedSync(
            provider=provider,
            client=self.registry.get(provider),
            run=run,
            credentials=credential.for_client(),
            product_refs=product_refs,
        )

    def _fetch_inventory(self, prep: _PreparedSync) -> list[InventoryItem]:
        with self.limiter.slot(prep.provider):
            start = time.monotonic()
            items = prep.client.get_inventory(prep.credentials, prep.product_refs)
            logger.debug(
                f"Fetched {len(items)} inventory item(s)",
                extra={
                    "provider": prep.provider,
                    "sync_run_id": str(prep.run.id),
                    "latency_ms": int((time.monotonic() - start) * 1000),
                },
            )
            return items

    def _complete(self, prep: _PreparedSync, items: list[InventoryItem], options: SyncOptions) -> ProviderSyncResult:
        run = prep.run
        try:
            mirror = apply_inventory(
                self.db, run.seller_id, prep.provider, items,
                now=self.clock(),
                tracker=self.tracker,
                force_update=options.force_update,
            )
            self.tracker.complete_run(
                run,
                items_synced=mirror.items_synced,
                items_failed=mirror.items_failed,
                items_total=mirror.items_total,
                errors=mirror.errors,
                now=self.clock(),
            )
        except Exception as e:
            self.db.rollback()
            return self._fail(run, e)

        sync_runs_total.labels(provider=prep.provider, status="completed").inc()
        return ProviderSyncResult(
            provider=prep.provider,
            status="completed",
            sync_id=run.id,
            items_synced=mirror.items_synced,
            items_failed=mirror.items_failed,
            items_deferred=mirror.items_deferred,
        )

    def _fail(self, run: SyncRun, error: Exception) -> ProviderSyncResult:
        provider = run.provider_name
        if isinstance(error, StockBridgeError):
            message, code = error.message, error.code
            logger.warning(
                f"Sync failed: {message}",
                extra={"seller_id": run.seller_id, "provider": provider, "sync_run_id": str(run.id), "error_code": code},
            )
        else:
            message, code = "Unexpected error during sync", "internal_error"
            logger.error(
                f"Sync failed with unexpected error: {error}",
                exc_info=error,
                extra={"seller_id": run.seller_id, "provider": provider, "sync_run_id": str(run.id)},
            )

        self.tracker.fail_run(run, message, errors=[{"code": code, "error": message}], now=self.clock())
        sync_runs_total.labels(provider=provider, status="failed").inc()

        if isinstance(error, ProviderAuthError):
            self.handle_auth_failure(run.seller_id, provider)

        return ProviderSyncResult(
            provider=provider,
            status="failed",
            sync_id=run.id,
            error=message,
            error_code=code,
            retry_after_seconds=error.retry_after_seconds if isinstance(error, RateLimited) else None,
        )

    def handle_auth_failure(self, seller_id: str, provider: str) -> None:
        """Mark the credential expired and ask the seller to reconnect."""
        self.vault.mark_expired(self.db, seller_id, provider)
        send_safely(self.notifier, NotificationRequest(
            user_id=seller_id,
            type="provider_reconnect_required",
            title=f"Reconnect your {provider} account",
            message=f"{provider} rejected the stored credentials. Reconnect the integration to resume syncing.",
            data={"provider": provider},
        ))

    def process_order(
        self,
        seller_id: str,
        provider: str,
        order: FulfillmentOrderRequest,
    ) -> FulfillmentOrderResult:
        """
        Create a provider-side fulfillment order. Not retried here; the caller
        schedules retries on failure.

        Raises:
            UnknownProvider, CredentialNotFound, ProviderError subclasses
        """
        client = self.registry.get(provider)
        credential = self.vault.get(self.db, seller_id, provider)
        try:
            result = client.create_fulfillment_order(credential.for_client(), order)
        except ProviderAuthError:
            self.handle_auth_failure(seller_id, provider)
            raise

        logger.info(
            f"Fulfillment order created for order {order.order_id}",
            extra={"seller_id": seller_id, "provider": provider, "operation": "process_order"},
        )
        return result
