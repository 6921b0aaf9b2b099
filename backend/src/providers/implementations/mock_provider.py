"""
Mock Provider - In-memory provider for development and testing

Simulates inventory, transfers and order creation without any network I/O.
"""

import json
import logging
import threading
import time
from typing import Any, Optional
from uuid import uuid4

from errors import (
    MalformedPayload,
    ProviderAuthError,
    ProviderError,
    ProviderTransferError,
    ProviderUnavailable,
    RateLimited,
)
from ..ports import (
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
    InventoryItem,
    NormalizedEvent,
    ProviderClient,
    TokenSet,
    TransferResult,
)


logger = logging.getLogger(__name__)


class MockProviderClient(ProviderClient):
    """
    Mock provider for testing and development.

    Failure simulation, either per instance (fail_with) or per credential
    payload ("mode"):
        - "success" (default)
        - "unavailable": raises ProviderUnavailable
        - "auth_error": raises ProviderAuthError
        - "rate_limited": raises RateLimited (retry_after_seconds from "retry_after", default 30)
        - "transfer_rejected": transfer_stock raises ProviderTransferError

    Usage:
        client = MockProviderClient(inventory=[InventoryItem("SKU-1", 10, 8, "p-1")])
        client.get_inventory({"mode": "success"})

        failing = MockProviderClient(name="acme", fail_with=ProviderUnavailable("down"))
    """

    supports_oauth = True

    def __init__(
        self,
        name: str = "mock",
        inventory: Optional[list[InventoryItem]] = None,
        fail_with: Optional[ProviderError] = None,
        delay_seconds: float = 0.0,
    ):
        self.name = name
        self._inventory = {item.provider_ref: item for item in (inventory or [])}
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def set_inventory(self, items: list[InventoryItem]) -> None:
        with self._lock:
            self._inventory = {item.provider_ref: item for item in items}

    def _record(self, operation: str, **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((operation, kwargs))

    def _simulate(self, credentials: dict[str, Any], operation: str) -> None:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)

        if self.fail_with is not None:
            raise self.fail_with

        mode = credentials.get("mode", "success")
        if mode == "unavailable":
            raise ProviderUnavailable(f"{self.name} simulated outage", provider=self.name)
        if mode == "auth_error":
            raise ProviderAuthError(f"{self.name} simulated credential rejection", provider=self.name)
        if mode == "rate_limited":
            raise RateLimited(provider=self.name, retry_after_seconds=float(credentials.get("retry_after", 30)))
        if mode == "transfer_rejected" and operation == "transfer_stock":
            raise ProviderTransferError(
                provider=self.name,
                reason=credentials.get("reason", "unsupported_route"),
            )

    def get_inventory(
        self,
        credentials: dict[str, Any],
        product_refs: Optional[list[str]] = None,
    ) -> list[InventoryItem]:
        self._record("get_inventory", product_refs=product_refs)
        self._simulate(credentials, "get_inventory")
        with self._lock:
            if not product_refs:
                return list(self._inventory.values())
            return [self._inventory[ref] for ref in product_refs if ref in self._inventory]

    def transfer_stock(
        self,
        credentials: dict[str, Any],
        sku: str,
        source_ref: str,
        target_ref: str,
        quantity: int,
    ) -> TransferResult:
        self._record("transfer_stock", sku=sku, source_ref=source_ref, target_ref=target_ref, quantity=quantity)
        self._simulate(credentials, "transfer_stock")
        logger.info(f"{self.name}: simulated transfer of {quantity} x {sku} {source_ref} -> {target_ref}")
        return TransferResult(provider_transaction_id=f"mock-tx-{uuid4().hex[:12]}")

    def create_fulfillment_order(
        self,
        credentials: dict[str, Any],
        order: FulfillmentOrderRequest,
    ) -> FulfillmentOrderResult:
        self._record("create_fulfillment_order", order_id=order.order_id)
        self._simulate(credentials, "create_fulfillment_order")
        return FulfillmentOrderResult(
            provider_order_id=f"mock-order-{uuid4().hex[:12]}",
            status="created",
            tracking_number=f"MOCK{uuid4().hex[:10].upper()}",
        )

    def handle_webhook(self, raw_payload: bytes) -> NormalizedEvent:
        try:
            payload = json.loads(raw_payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedPayload(f"Webhook body is not valid JSON: {e}", provider=self.name)
        if not isinstance(payload, dict) or not payload.get("eventType") or not payload.get("userId"):
            raise MalformedPayload("Webhook payload missing eventType or userId", provider=self.name)

        return NormalizedEvent(
            event_type=str(payload["eventType"]),
            seller_id=str(payload["userId"]),
            order_id=str(payload["orderId"]) if payload.get("orderId") else None,
            external_id=str(payload["id"]) if payload.get("id") else None,
            data={k: v for k, v in payload.items() if k not in ("eventType", "userId")},
        )

    def build_authorization_url(self, state: str, redirect_uri: str, sandbox: bool, client_id: str) -> str:
        return f"https://mock-provider.local/authorize?state={state}&redirect_uri={redirect_uri}&sandbox={str(sandbox).lower()}"

    def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        sandbox: bool,
        client_id: str,
        client_secret: str,
    ) -> TokenSet:
        self._record("exchange_code", code=code)
        if self.fail_with is not None:
            raise self.fail_with
        return TokenSet(
            access_token=f"mock-access-{code}",
            refresh_token=f"mock-refresh-{code}",
            expires_in=3600,
        )
