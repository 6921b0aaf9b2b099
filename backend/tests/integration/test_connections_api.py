"""Integration tests for provider connections: OAuth handshake, manual keys, disconnect, orders"""

from urllib.parse import parse_qs, urlparse

import pytest

from conftest import SELLER_ID


pytestmark = pytest.mark.integration


def query_of(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestOAuthFlow:

    def test_authorize_then_callback_connects(self, client, api_client, container, db_session):
        response = api_client.post("/oauth/mock/authorize", json={"sandbox": False})

        assert response.status_code == 200
        state = query_of(response.json()["authorizationUrl"])["state"]

        callback = client.get("/oauth/callback", params={"code": "abc", "state": state}, follow_redirects=False)

        assert callback.status_code == 302
        location = callback.headers["location"]
        assert location.startswith(f"{container.settings.DASHBOARD_URL.rstrip('/')}/seller/dashboard/integrations?")
        assert query_of(location) == {"sandbox": "false", "status": "connected", "provider": "mock"}
        assert container.vault.get(db_session, SELLER_ID, "mock").payload["access_token"] == "mock-access-abc"

        connections = api_client.get("/v1/connections").json()
        assert [(c["provider"], c["connectionType"], c["status"]) for c in connections] == [("mock", "oauth", "connected")]

    def test_unknown_state_redirects_with_error(self, client):
        callback = client.get("/oauth/callback", params={"code": "abc", "state": "forged"}, follow_redirects=False)

        assert callback.status_code == 302
        params = query_of(callback.headers["location"])
        assert params["status"] == "error"
        assert params["error"] == "invalid_or_expired_state"

    def test_provider_error_is_passed_through(self, client):
        callback = client.get("/oauth/callback", params={"error": "access_denied"}, follow_redirects=False)
        assert query_of(callback.headers["location"])["error"] == "access_denied"

    def test_authorize_unknown_provider(self, api_client):
        response = api_client.post("/oauth/nope/authorize")
        assert response.status_code == 400
        assert response.json()["code"] == "unknown_provider"


class TestManualConnections:

    def test_connect_and_disconnect(self, api_client, container, db_session):
        response = api_client.post("/v1/connections/mock/manual", json={"credentials": {"mode": "success"}})

        assert response.status_code == 201
        assert response.json()["connectionType"] == "apiKey"
        assert container.vault.get(db_session, SELLER_ID, "mock").payload == {"mode": "success"}

        disconnected = api_client.delete("/v1/connections/mock")
        assert disconnected.status_code == 200
        assert disconnected.json()["disconnected"] == 1

        again = api_client.delete("/v1/connections/mock")
        assert again.status_code == 404
        assert again.json()["code"] == "credential_not_found"


class TestFulfillmentOrders:

    def order(self, provider="mock"):
        return {
            "provider": provider,
            "orderId": "order-42",
            "items": [{"sku": "SKU-1", "quantity": 2}],
            "shippingAddress": {"name": "Ada", "city": "Reno", "country": "US"},
        }

    def test_creates_order_at_provider(self, api_client, connected_mock, mock_provider):
        response = api_client.post("/v1/fulfillment/orders", json=self.order())

        assert response.status_code == 201
        body = response.json()
        assert body["orderId"] == "order-42"
        assert body["providerOrderId"].startswith("mock-order-")
        assert body["status"] == "created"
        assert [name for name, _ in mock_provider.calls] == ["create_fulfillment_order"]

    def test_requires_connection(self, api_client):
        response = api_client.post("/v1/fulfillment/orders", json=self.order())
        assert response.status_code == 404
        assert response.json()["code"] == "credential_not_found"
