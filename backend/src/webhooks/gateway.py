"""
Webhook Gateway - inbound provider webhooks

Order of operations:
1. Resolve the provider from x-fulfillment-provider (UnknownProvider otherwise)
2. Verify x-{provider}-signature (HMAC-SHA256 of the raw body, constant-time)
   before anything parses the body; failures are security events
3. Normalize through the provider client (MalformedPayload is dropped, never retried)
4. Store the WebhookEvent once per (provider, body); replays resolve to the stored row
5. inventory.updated events refresh the warehouse_stock mirror
6. Hand off to the WebhookDispatcher synchronously (dispatch is idempotent per event)

The gateway never retries; retries belong to the dispatcher.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit import log_audit_event
from config import Settings
from errors import InvalidSignature, MalformedPayload, ValidationFailed
from fulfillment.inventory_mirror import apply_inventory
from models import WebhookEvent, utcnow
from observability.metrics import webhook_events_total
from observability.request_id import ensure_request_id
from providers import InventoryItem, NormalizedEvent, ProviderRegistry
from sync.progress import SyncProgressTracker
from .dispatcher import WebhookDispatcher
from .signing import verify_signature


logger = logging.getLogger(__name__)

PROVIDER_HEADER = "x-fulfillment-provider"
INVENTORY_UPDATED = "inventory.updated"


def signature_header(provider: str) -> str:
    return f"x-{provider}-signature"


def payload_hash(provider: str, raw_body: bytes) -> str:
    return hashlib.sha256(provider.encode() + b":" + raw_body).hexdigest()


@dataclass
class GatewayResult:
    event: WebhookEvent
    duplicate: bool = False
    deliveries: int = 0


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def inventory_items_from_event(data: dict[str, Any]) -> list[InventoryItem]:
    """Inventory rows carried by an inventory.updated event (single row or "items" list)."""
    rows = data.get("items") if isinstance(data.get("items"), list) else [data]
    items = []
    for row in rows:
        quantity = int(_first(row, "quantity", "onHandQuantity", "on_hand_quantity") or 0)
        available = _first(row, "availableQuantity", "available_quantity", "fulfillableQuantity")
        items.append(InventoryItem(
            sku=str(_first(row, "sku", "SKU") or ""),
            quantity=quantity,
            available_quantity=int(available) if available is not None else quantity,
            provider_ref=str(_first(row, "inventoryId", "inventory_id", "providerRef", "id") or ""),
            warehouse_ref=_first(row, "warehouseRef", "locationId", "warehouse_code", "fulfillmentCenterId"),
        ))
    return items


class WebhookGateway:
    """
    Usage:
        gateway = container.gateway(db)
        result = gateway.receive(request.headers, raw_body, client_info)
    """

    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry,
        settings: Settings,
        dispatcher: WebhookDispatcher,
        tracker: SyncProgressTracker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.settings = settings
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.clock = clock

    def receive(
        self,
        headers: Mapping[str, str],
        raw_body: bytes,
        client_info: Optional[dict[str, Optional[str]]] = None,
    ) -> GatewayResult:
        """
        Verify, store and dispatch one inbound webhook.

        Raises:
            ValidationFailed: Missing provider header
            UnknownProvider: Provider header names no registered provider
            InvalidSignature: Signature missing or wrong (nothing parsed)
            MalformedPayload: Verified body lacks required fields
        """
        request_id = ensure_request_id()
        provider = (headers.get(PROVIDER_HEADER) or "").strip().lower()
        if not provider:
            raise ValidationFailed(f"{PROVIDER_HEADER} header is required")
        client = self.registry.get(provider)

        signature = headers.get(signature_header(provider))
        if not verify_signature(self.settings.webhook_secret(provider), raw_body, signature):
            self._reject_signature(provider, signature is not None, client_info or {})

        try:
            normalized = client.handle_webhook(raw_body)
        except MalformedPayload as e:
            webhook_events_total.labels(provider=provider, result="malformed").inc()
            logger.warning(f"Dropped malformed webhook: {e.message}", extra={"provider": provider})
            raise

        digest = payload_hash(provider, raw_body)
        existing = self._find_by_hash(digest)
        if existing is not None:
            return self._replay(existing)

        event = WebhookEvent(
            seller_id=normalized.seller_id,
            source_provider=provider,
            event_type=normalized.event_type,
            order_id=normalized.order_id,
            external_id=normalized.external_id,
            payload=normalized.data,
            payload_hash=digest,
            signature_valid=True,
            request_id=request_id,
            received_at=self.clock(),
        )
        self.db.add(event)
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same body stored it first
            self.db.rollback()
            return self._replay(self._find_by_hash(digest))

        webhook_events_total.labels(provider=provider, result="accepted").inc()
        logger.info(
            f"Accepted {normalized.event_type} webhook",
            extra={"provider": provider, "seller_id": normalized.seller_id, "event_id": str(event.id)},
        )

        if normalized.event_type == INVENTORY_UPDATED:
            self._update_inventory(event, normalized)

        deliveries = self.dispatcher.dispatch(event.seller_id, event.event_type, self._event_data(event), event_id=event.id)
        return GatewayResult(event=event, duplicate=False, deliveries=len(deliveries))

    def _replay(self, event: WebhookEvent) -> GatewayResult:
        webhook_events_total.labels(provider=event.source_provider, result="duplicate").inc()
        logger.info(
            "Duplicate webhook, returning stored event",
            extra={"provider": event.source_provider, "event_id": str(event.id)},
        )
        # Finishes a dispatch interrupted before all deliveries were created
        deliveries = self.dispatcher.dispatch(event.seller_id, event.event_type, self._event_data(event), event_id=event.id)
        return GatewayResult(event=event, duplicate=True, deliveries=len(deliveries))

    def _reject_signature(self, provider: str, signature_present: bool, client_info: dict[str, Optional[str]]) -> None:
        webhook_events_total.labels(provider=provider, result="invalid_signature").inc()
        log_audit_event(
            self.db,
            action="security.invalid_signature",
            entity_type="webhook",
            metadata={"provider": provider, "signaturePresent": signature_present},
            security_event=True,
            **client_info,
        )
        self.db.commit()
        raise InvalidSignature(f"Invalid {provider} webhook signature")

    def _update_inventory(self, event: WebhookEvent, normalized: NormalizedEvent) -> None:
        try:
            items = inventory_items_from_event(normalized.data)
        except (TypeError, ValueError) as e:
            logger.warning(
                f"inventory.updated event has unusable quantities: {e}",
                extra={"event_id": str(event.id), "provider": event.source_provider},
            )
            return
        apply_inventory(
            self.db, event.seller_id, event.source_provider, items,
            now=self.clock(),
            tracker=self.tracker,
        )
        self.db.commit()

    def _find_by_hash(self, digest: str) -> Optional[WebhookEvent]:
        return self.db.query(WebhookEvent).filter(WebhookEvent.payload_hash == digest).first()

    def _event_data(self, event: WebhookEvent) -> dict[str, Any]:
        return {
            "eventId": str(event.id),
            "provider": event.source_provider,
            "orderId": event.order_id,
            **(event.payload or {}),
        }
