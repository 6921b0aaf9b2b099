"""
4PX provider client.

Dropshipping/warehouse provider connected with an API key. 4PX wraps every
response in an envelope ({"result": "1"|"0", "errors": [...], "data": ...})
and reports throttling and auth failures inside HTTP 200 responses, so the
envelope is checked after the status code.
"""

from typing import Any, Optional

from errors import ProviderAuthError, ProviderError, ProviderTransferError, RateLimited
from ..base_client import BaseProviderClient, DEFAULT_RETRY_AFTER_SECONDS
from ..ports import (
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
    InventoryItem,
    NormalizedEvent,
    TransferResult,
)

RATE_LIMIT_CODES = {"RATE_LIMIT", "TOO_MANY_REQUESTS"}
AUTH_ERROR_CODES = {"AUTH_FAILED", "INVALID_TOKEN", "TOKEN_EXPIRED", "INVALID_API_KEY"}

# 4PX event names -> normalized event types
EVENT_TYPES = {
    "ORDER_CREATED": "order.created",
    "ORDER_SHIPPED": "order.shipped",
    "ORDER_DELIVERED": "order.delivered",
    "ORDER_CANCELLED": "order.cancelled",
    "ORDER_EXCEPTION": "order.exception",
    "INVENTORY_CHANGED": "inventory.updated",
}


class FourPXClient(BaseProviderClient):
    """4PX open API client."""

    name = "fourpx"

    API_URL = "https://open.4px.com"
    SANDBOX_API_URL = "https://open-test.4px.com"

    def required_credential_fields(self) -> list[str]:
        return ["api_key"]

    def _base_url(self, credentials: dict[str, Any]) -> str:
        if credentials.get("api_url"):
            return str(credentials["api_url"]).rstrip("/")
        return self.SANDBOX_API_URL if credentials.get("sandbox") else self.API_URL

    def _headers(self, credentials: dict[str, Any]) -> dict[str, str]:
        self.validate_required_fields(credentials, self.required_credential_fields())
        return {
            "Authorization": f"Bearer {credentials['api_key']}",
            "Accept": "application/json",
        }

    def _check_envelope(self, body: Any, operation: str) -> None:
        if not isinstance(body, dict) or str(body.get("result", "1")) != "0":
            return

        errors = body.get("errors") or [{}]
        first = errors[0] if isinstance(errors, list) and errors else {}
        code = str(first.get("error_code") or first.get("code") or "").upper()
        message = first.get("error_msg") or first.get("message") or "request rejected"

        if code in RATE_LIMIT_CODES:
            data = body.get("data") or {}
            retry_after = data.get("retry_after") if isinstance(data, dict) else None
            raise RateLimited(
                provider=self.name,
                retry_after_seconds=float(retry_after or DEFAULT_RETRY_AFTER_SECONDS),
            )
        if code in AUTH_ERROR_CODES:
            raise ProviderAuthError(f"4PX rejected the API key: {message}", provider=self.name)
        if operation == "transfer_stock":
            raise ProviderTransferError(
                f"4PX rejected transfer: {message}",
                provider=self.name,
                reason=self.transfer_reason(code),
            )
        raise ProviderError(f"4PX {operation} failed ({code or 'unknown'}): {message}", provider=self.name)

    @staticmethod
    def _data(body: Any) -> Any:
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def get_inventory(
        self,
        credentials: dict[str, Any],
        product_refs: Optional[list[str]] = None,
    ) -> list[InventoryItem]:
        headers = self._headers(credentials)
        base = self._base_url(credentials)

        if not product_refs:
            data = self._data(self.request("GET", f"{base}/api/inventory", "get_inventory", headers=headers))
            rows = data.get("items", []) if isinstance(data, dict) else (data or [])
            return [self._to_item(row) for row in rows]

        items = []
        for ref in product_refs:
            data = self._data(self.request("GET", f"{base}/api/inventory/{ref}", "get_inventory", headers=headers))
            items.append(self._to_item(data or {}, default_ref=ref))
        return items

    @staticmethod
    def _to_item(row: dict[str, Any], default_ref: str = "") -> InventoryItem:
        available = int(row.get("available_quantity") or 0)
        return InventoryItem(
            sku=str(row.get("sku") or ""),
            quantity=int(row.get("total_quantity") or available),
            available_quantity=available,
            provider_ref=str(row.get("id") or row.get("product_id") or default_ref),
            warehouse_ref=row.get("warehouse_code"),
        )

    def transfer_stock(
        self,
        credentials: dict[str, Any],
        sku: str,
        source_ref: str,
        target_ref: str,
        quantity: int,
    ) -> TransferResult:
        data = self._data(self.request(
            "POST",
            f"{self._base_url(credentials)}/api/inventory/transfer",
            "transfer_stock",
            headers=self._headers(credentials),
            json_body={
                "sku": sku,
                "from_warehouse_code": source_ref,
                "to_warehouse_code": target_ref,
                "quantity": quantity,
            },
        )) or {}
        transfer_no = data.get("transfer_no") or data.get("id")
        if not transfer_no:
            raise ProviderError("4PX transfer response missing transfer_no", provider=self.name)
        return TransferResult(provider_transaction_id=str(transfer_no), provider_metadata=data)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_fulfillment_order(
        self,
        credentials: dict[str, Any],
        order: FulfillmentOrderRequest,
    ) -> FulfillmentOrderResult:
        data = self._data(self.request(
            "POST",
            f"{self._base_url(credentials)}/api/fulfillment/create",
            "create_fulfillment_order",
            headers=self._headers(credentials),
            json_body={
                "ref_no": order.order_id,
                "logistics_service": order.shipping_method,
                "recipient": order.shipping_address,
                "items": [{"sku": item["sku"], "quantity": item["quantity"]} for item in order.items],
            },
        )) or {}
        order_no = data.get("order_no") or data.get("id")
        if not order_no:
            raise ProviderError("4PX order response missing order_no", provider=self.name)
        return FulfillmentOrderResult(
            provider_order_id=str(order_no),
            status=str(data.get("status") or "created"),
            tracking_number=data.get("tracking_number"),
            provider_metadata=data,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_webhook(self, raw_payload: bytes) -> NormalizedEvent:
        payload = self.parse_json_payload(raw_payload)
        raw_type = payload.get("eventType") or payload.get("event_type") or ""
        event_type = EVENT_TYPES.get(str(raw_type).upper(), raw_type)
        user_id = payload.get("userId") or payload.get("user_id")
        order_id = payload.get("orderId") or payload.get("ref_no")

        normalized = {"eventType": event_type, "userId": user_id, "orderId": order_id}
        self.require_fields(normalized, ["eventType", "userId"])
        if event_type.startswith("order."):
            self.require_fields(normalized, ["orderId"])

        return NormalizedEvent(
            event_type=event_type,
            seller_id=str(user_id),
            order_id=str(order_id) if order_id else None,
            external_id=str(payload["event_id"]) if payload.get("event_id") else None,
            occurred_at=payload.get("timestamp"),
            data={
                k: v for k, v in payload.items()
                if k not in ("eventType", "event_type", "userId", "user_id")
            },
        )
