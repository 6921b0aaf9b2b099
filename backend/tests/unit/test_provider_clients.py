"""Unit tests for the HTTP provider clients

Vendor APIs are replaced with httpx.MockTransport handlers, so these tests
exercise request building, response normalization and error mapping without
network access.
"""

import json

import httpx
import pytest

from config import Settings
from errors import (
    MalformedPayload,
    ProviderAuthError,
    ProviderError,
    ProviderTransferError,
    ProviderUnavailable,
    RateLimited,
)
from providers import FourPXClient, MockProviderClient, ShipBobClient
from providers.base_client import parse_retry_after


def make_client(cls, handler):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return cls(http_client, Settings(PROVIDER_TIMEOUT_SECONDS=2.0))


SHIPBOB_CREDS = {"access_token": "tok-123", "sandbox": False}
FOURPX_CREDS = {"api_key": "key-123", "sandbox": False}


class TestParseRetryAfter:

    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120.0

    def test_missing_uses_default(self):
        assert parse_retry_after(None, default=30.0) == 30.0

    def test_garbage_uses_default(self):
        assert parse_retry_after("soon", default=15.0) == 15.0

    def test_past_http_date_is_zero(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


class TestShipBobInventory:

    def test_inventory_rows_are_normalized(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{
                "id": 991,
                "sku": "SKU-1",
                "total_onhand_quantity": 12,
                "total_fulfillable_quantity": 9,
                "fulfillment_center_id": 7,
            }])

        client = make_client(ShipBobClient, handler)
        items = client.get_inventory(SHIPBOB_CREDS)

        assert len(items) == 1
        item = items[0]
        assert (item.sku, item.quantity, item.available_quantity) == ("SKU-1", 12, 9)
        assert item.provider_ref == "991"
        assert item.warehouse_ref == "7"
        assert str(seen[0].url) == "https://api.shipbob.com/2.0/inventory"
        assert seen[0].headers["Authorization"] == "Bearer tok-123"

    def test_sandbox_uses_sandbox_host(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        make_client(ShipBobClient, handler).get_inventory({**SHIPBOB_CREDS, "sandbox": True})
        assert seen[0].url.host == "sandbox-api.shipbob.com"

    def test_product_refs_are_queried_individually(self):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("product_id"))
            return httpx.Response(200, json=[{"id": 1, "sku": "A", "total_onhand_quantity": 1}])

        make_client(ShipBobClient, handler).get_inventory(SHIPBOB_CREDS, ["p1", "p2"])
        assert seen == ["p1", "p2"]

    def test_missing_token_is_auth_error(self):
        client = make_client(ShipBobClient, lambda request: httpx.Response(200, json=[]))
        with pytest.raises(ProviderAuthError):
            client.get_inventory({"sandbox": False})


class TestShipBobErrorMapping:

    def test_429_honours_retry_after(self):
        client = make_client(ShipBobClient, lambda r: httpx.Response(429, headers={"Retry-After": "42"}))
        with pytest.raises(RateLimited) as exc_info:
            client.get_inventory(SHIPBOB_CREDS)
        assert exc_info.value.retry_after_seconds == 42.0

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures(self, status):
        client = make_client(ShipBobClient, lambda r: httpx.Response(status))
        with pytest.raises(ProviderAuthError):
            client.get_inventory(SHIPBOB_CREDS)

    def test_5xx_is_unavailable(self):
        client = make_client(ShipBobClient, lambda r: httpx.Response(503))
        with pytest.raises(ProviderUnavailable):
            client.get_inventory(SHIPBOB_CREDS)

    def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(ShipBobClient, handler)
        with pytest.raises(ProviderUnavailable):
            client.get_inventory(SHIPBOB_CREDS)

    def test_non_json_body_is_unavailable(self):
        client = make_client(ShipBobClient, lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderUnavailable):
            client.get_inventory(SHIPBOB_CREDS)

    def test_transfer_rejection_maps_reason(self):
        client = make_client(
            ShipBobClient,
            lambda r: httpx.Response(422, json={"code": "insufficient_inventory", "message": "not enough"}),
        )
        with pytest.raises(ProviderTransferError) as exc_info:
            client.transfer_stock(SHIPBOB_CREDS, "SKU-1", "7", "8", 5)
        assert exc_info.value.reason == "insufficient_stock"

    def test_other_4xx_is_provider_error(self):
        client = make_client(ShipBobClient, lambda r: httpx.Response(404, json={"message": "nope"}))
        with pytest.raises(ProviderError) as exc_info:
            client.get_inventory(SHIPBOB_CREDS)
        assert not isinstance(exc_info.value, ProviderTransferError)

    def test_transfer_success(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["from_fulfillment_center_id"] == "7"
            assert body["quantity"] == 5
            return httpx.Response(200, json={"id": "tr-1"})

        result = make_client(ShipBobClient, handler).transfer_stock(SHIPBOB_CREDS, "SKU-1", "7", "8", 5)
        assert result.provider_transaction_id == "tr-1"


class TestShipBobWebhooks:

    def setup_method(self):
        self.client = make_client(ShipBobClient, lambda r: httpx.Response(200))

    def test_topic_is_normalized(self):
        event = self.client.handle_webhook(json.dumps({
            "topic": "order_shipped", "userId": "seller-1", "orderId": "o-1", "id": "evt-1",
        }).encode())
        assert event.event_type == "order.shipped"
        assert event.seller_id == "seller-1"
        assert event.order_id == "o-1"
        assert event.external_id == "evt-1"

    def test_order_event_without_order_id_is_malformed(self):
        with pytest.raises(MalformedPayload):
            self.client.handle_webhook(json.dumps({"topic": "order_shipped", "userId": "s"}).encode())

    def test_invalid_json_is_malformed(self):
        with pytest.raises(MalformedPayload):
            self.client.handle_webhook(b"{not json")

    def test_authorization_url_carries_state(self):
        url = self.client.build_authorization_url("st-1", "http://app/oauth/callback", True, "cid")
        assert url.startswith(ShipBobClient.SANDBOX_AUTHORIZE_URL)
        assert "state=st-1" in url
        assert "client_id=cid" in url


class TestFourPX:

    def test_inventory_from_envelope(self):
        def handler(request):
            assert request.url.path == "/api/inventory"
            return httpx.Response(200, json={"result": "1", "data": {"items": [
                {"id": "fx-1", "sku": "SKU-9", "total_quantity": 20, "available_quantity": 15, "warehouse_code": "USLAX"},
            ]}})

        items = make_client(FourPXClient, handler).get_inventory(FOURPX_CREDS)
        assert items[0].sku == "SKU-9"
        assert items[0].quantity == 20
        assert items[0].available_quantity == 15
        assert items[0].warehouse_ref == "USLAX"

    def test_rate_limit_inside_200(self):
        body = {"result": "0", "errors": [{"error_code": "RATE_LIMIT", "error_msg": "slow down"}], "data": {"retry_after": 12}}
        client = make_client(FourPXClient, lambda r: httpx.Response(200, json=body))
        with pytest.raises(RateLimited) as exc_info:
            client.get_inventory(FOURPX_CREDS)
        assert exc_info.value.retry_after_seconds == 12.0

    def test_auth_failure_inside_200(self):
        body = {"result": "0", "errors": [{"error_code": "INVALID_API_KEY", "error_msg": "bad key"}]}
        client = make_client(FourPXClient, lambda r: httpx.Response(200, json=body))
        with pytest.raises(ProviderAuthError):
            client.get_inventory(FOURPX_CREDS)

    def test_transfer_rejection_inside_200(self):
        body = {"result": "0", "errors": [{"error_code": "ROUTE_NOT_SUPPORTED", "error_msg": "no"}]}
        client = make_client(FourPXClient, lambda r: httpx.Response(200, json=body))
        with pytest.raises(ProviderTransferError) as exc_info:
            client.transfer_stock(FOURPX_CREDS, "SKU-9", "USLAX", "USNJ", 3)
        assert exc_info.value.reason == "unsupported_route"

    def test_transfer_success(self):
        body = {"result": "1", "data": {"transfer_no": "TN-77"}}
        result = make_client(FourPXClient, lambda r: httpx.Response(200, json=body)).transfer_stock(
            FOURPX_CREDS, "SKU-9", "USLAX", "USNJ", 3
        )
        assert result.provider_transaction_id == "TN-77"

    def test_webhook_event_names(self):
        client = make_client(FourPXClient, lambda r: httpx.Response(200))
        event = client.handle_webhook(json.dumps({
            "event_type": "ORDER_SHIPPED", "user_id": "seller-1", "ref_no": "o-5", "event_id": "e-5",
        }).encode())
        assert event.event_type == "order.shipped"
        assert event.order_id == "o-5"
        assert event.external_id == "e-5"


class TestMockProvider:

    def test_credential_mode_simulates_failures(self):
        client = MockProviderClient()
        with pytest.raises(ProviderUnavailable):
            client.get_inventory({"mode": "unavailable"})
        with pytest.raises(ProviderAuthError):
            client.get_inventory({"mode": "auth_error"})
        with pytest.raises(RateLimited) as exc_info:
            client.get_inventory({"mode": "rate_limited", "retry_after": 5})
        assert exc_info.value.retry_after_seconds == 5.0

    def test_transfer_rejected_only_affects_transfers(self):
        client = MockProviderClient()
        assert client.get_inventory({"mode": "transfer_rejected"}) == []
        with pytest.raises(ProviderTransferError):
            client.transfer_stock({"mode": "transfer_rejected"}, "SKU", "a", "b", 1)

    def test_calls_are_recorded(self):
        client = MockProviderClient()
        client.transfer_stock({}, "SKU", "a", "b", 2)
        assert client.calls == [("transfer_stock", {"sku": "SKU", "source_ref": "a", "target_ref": "b", "quantity": 2})]
