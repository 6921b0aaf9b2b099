"""
ShipBob provider client.

Ship-from-warehouse provider linked through OAuth. Calls carry the seller's
bearer token and, when the seller picked one, the shipbob_channel_id header.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

from errors import ProviderAuthError, ProviderUnavailable
from ..base_client import BaseProviderClient
from ..ports import (
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
    InventoryItem,
    NormalizedEvent,
    TokenSet,
    TransferResult,
)


logger = logging.getLogger(__name__)

# ShipBob webhook topics -> normalized event types
TOPIC_EVENT_TYPES = {
    "order_shipped": "order.shipped",
    "shipment_delivered": "order.delivered",
    "shipment_exception": "order.exception",
    "shipment_onhold": "order.on_hold",
    "shipment_cancelled": "order.cancelled",
    "inventory_updated": "inventory.updated",
}


class ShipBobClient(BaseProviderClient):
    """ShipBob API 2.0 client."""

    name = "shipbob"
    supports_oauth = True

    API_URL = "https://api.shipbob.com/2.0"
    SANDBOX_API_URL = "https://sandbox-api.shipbob.com/2.0"
    AUTHORIZE_URL = "https://auth.shipbob.com/connect/authorize"
    SANDBOX_AUTHORIZE_URL = "https://authstage.shipbob.com/connect/authorize"
    TOKEN_URL = "https://auth.shipbob.com/connect/token"
    SANDBOX_TOKEN_URL = "https://authstage.shipbob.com/connect/token"
    SCOPES = ["channels_read", "inventory_read", "inventory_write", "orders_write", "offline_access"]

    def required_credential_fields(self) -> list[str]:
        return ["access_token"]

    def _base_url(self, credentials: dict[str, Any]) -> str:
        return self.SANDBOX_API_URL if credentials.get("sandbox") else self.API_URL

    def _headers(self, credentials: dict[str, Any]) -> dict[str, str]:
        self.validate_required_fields(credentials, self.required_credential_fields())
        headers = {
            "Authorization": f"Bearer {credentials['access_token']}",
            "Accept": "application/json",
        }
        if credentials.get("channel_id"):
            headers["shipbob_channel_id"] = str(credentials["channel_id"])
        return headers

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def get_inventory(
        self,
        credentials: dict[str, Any],
        product_refs: Optional[list[str]] = None,
    ) -> list[InventoryItem]:
        headers = self._headers(credentials)
        url = f"{self._base_url(credentials)}/inventory"

        if not product_refs:
            rows = self.request("GET", url, "get_inventory", headers=headers)
            return [self._to_item(row) for row in self._as_list(rows)]

        items: list[InventoryItem] = []
        for ref in product_refs:
            rows = self.request("GET", url, "get_inventory", headers=headers, params={"product_id": ref})
            items.extend(self._to_item(row, default_ref=ref) for row in self._as_list(rows))
        return items

    @staticmethod
    def _as_list(body: Any) -> list[dict[str, Any]]:
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            return body.get("items") or body.get("data") or []
        return []

    @staticmethod
    def _to_item(row: dict[str, Any], default_ref: str = "") -> InventoryItem:
        on_hand = row.get("total_onhand_quantity", row.get("on_hand_quantity", 0)) or 0
        fulfillable = row.get("total_fulfillable_quantity", row.get("fulfillable_quantity", on_hand)) or 0
        return InventoryItem(
            sku=str(row.get("sku") or row.get("reference_id") or ""),
            quantity=int(on_hand),
            available_quantity=int(fulfillable),
            provider_ref=str(row.get("id") or row.get("inventory_id") or default_ref),
            warehouse_ref=str(row["fulfillment_center_id"]) if row.get("fulfillment_center_id") else None,
        )

    def transfer_stock(
        self,
        credentials: dict[str, Any],
        sku: str,
        source_ref: str,
        target_ref: str,
        quantity: int,
    ) -> TransferResult:
        body = self.request(
            "POST",
            f"{self._base_url(credentials)}/inventory/transfer",
            "transfer_stock",
            headers=self._headers(credentials),
            json_body={
                "reference_id": sku,
                "from_fulfillment_center_id": source_ref,
                "to_fulfillment_center_id": target_ref,
                "quantity": quantity,
            },
        )
        transfer_id = body.get("id") or body.get("transfer_id")
        if not transfer_id:
            raise self._missing_field("transfer id")
        return TransferResult(provider_transaction_id=str(transfer_id), provider_metadata=body)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_fulfillment_order(
        self,
        credentials: dict[str, Any],
        order: FulfillmentOrderRequest,
    ) -> FulfillmentOrderResult:
        address = order.shipping_address
        body = self.request(
            "POST",
            f"{self._base_url(credentials)}/order",
            "create_fulfillment_order",
            headers=self._headers(credentials),
            json_body={
                "reference_id": order.order_id,
                "shipping_method": order.shipping_method,
                "recipient": {
                    "name": address.get("name"),
                    "address": {
                        "address1": address.get("street"),
                        "city": address.get("city"),
                        "state": address.get("state"),
                        "country": address.get("country"),
                        "zip_code": address.get("postalCode") or address.get("postal_code"),
                    },
                },
                "products": [
                    {"reference_id": item["sku"], "quantity": item["quantity"]}
                    for item in order.items
                ],
            },
        )
        order_id = body.get("id")
        if not order_id:
            raise self._missing_field("order id")
        return FulfillmentOrderResult(
            provider_order_id=str(order_id),
            status=str(body.get("status") or "Processing"),
            tracking_number=(body.get("tracking") or {}).get("tracking_number"),
            provider_metadata=body,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_webhook(self, raw_payload: bytes) -> NormalizedEvent:
        payload = self.parse_json_payload(raw_payload)
        event_type = payload.get("eventType") or TOPIC_EVENT_TYPES.get(str(payload.get("topic", "")))
        payload = {**payload, "eventType": event_type}
        self.require_fields(payload, ["eventType", "userId"])
        if event_type.startswith("order."):
            self.require_fields(payload, ["orderId"])

        return NormalizedEvent(
            event_type=event_type,
            seller_id=str(payload["userId"]),
            order_id=str(payload["orderId"]) if payload.get("orderId") else None,
            external_id=str(payload["id"]) if payload.get("id") else None,
            occurred_at=payload.get("timestamp") or payload.get("created_date"),
            data={k: v for k, v in payload.items() if k not in ("eventType", "userId")},
        )

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def build_authorization_url(self, state: str, redirect_uri: str, sandbox: bool, client_id: str) -> str:
        base = self.SANDBOX_AUTHORIZE_URL if sandbox else self.AUTHORIZE_URL
        query = urlencode({
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state,
        })
        return f"{base}?{query}"

    def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        sandbox: bool,
        client_id: str,
        client_secret: str,
    ) -> TokenSet:
        body = self.request(
            "POST",
            self.SANDBOX_TOKEN_URL if sandbox else self.TOKEN_URL,
            "exchange_code",
            headers={"Accept": "application/json"},
            form={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        if not body.get("access_token"):
            raise ProviderAuthError("Token response missing access_token", provider=self.name)
        return TokenSet(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_in=body.get("expires_in"),
            token_type=body.get("token_type", "Bearer"),
            scope=body.get("scope"),
        )

    def _missing_field(self, what: str) -> ProviderUnavailable:
        return ProviderUnavailable(f"{self.name} response missing {what}", provider=self.name)
