"""Integration tests for app-wide behavior: authentication, error envelope, health endpoints"""

import pytest

from auth.api_key import issue_api_key, revoke_api_key
from conftest import OTHER_SELLER_ID


pytestmark = pytest.mark.integration


class TestAuthentication:

    def test_missing_key_is_401_envelope(self, client):
        response = client.get("/v1/inventory/schedule")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "unauthorized"
        assert body["requestId"] == response.headers["X-Request-ID"]
        assert body["timestamp"]

    def test_unknown_key_is_rejected(self, client):
        response = client.get("/v1/inventory/schedule", headers={"X-API-Key": "sb_not-a-real-key"})
        assert response.status_code == 401

    def test_revoked_key_is_rejected(self, client, db_session):
        record, plaintext = issue_api_key(db_session, OTHER_SELLER_ID, "temporary")
        assert client.get("/v1/inventory/schedule", headers={"X-API-Key": plaintext}).status_code == 200

        revoke_api_key(db_session, record.id)

        assert client.get("/v1/inventory/schedule", headers={"X-API-Key": plaintext}).status_code == 401

    def test_keys_scope_data_to_their_seller(self, client, api_client, db_session):
        api_client.post("/v1/inventory/schedule", json={
            "name": "Hourly",
            "provider": "mock",
            "frequency": {"kind": "interval", "value": "1h"},
        })
        _, other_key = issue_api_key(db_session, OTHER_SELLER_ID, "other")

        assert client.get("/v1/inventory/schedule", headers={"X-API-Key": other_key}).json() == []


class TestErrorEnvelope:

    def test_body_validation_error(self, api_client):
        response = api_client.post("/warehouse/transfer", json={"productId": "SKU-1"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "validation_error"
        assert {tuple(e["loc"])[-1] for e in body["details"]["errors"]} >= {"sourceWarehouseId", "quantity"}

    def test_unknown_route_is_404_envelope(self, client):
        response = client.get("/v1/nothing-here")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestProbes:

    def test_health_is_degraded_without_redis(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["components"]["database"]["status"] == "healthy"
        assert body["components"]["redis"]["status"] == "degraded"
        assert body["components"]["providers"]["providers"] == ["acme", "mock"]

    def test_ready(self, client):
        assert client.get("/ready").json()["status"] == "ready"

    def test_metrics_are_exposed(self, client, api_client, connected_mock, mock_warehouse):
        api_client.post("/v1/inventory/sync", json={"providers": ["mock"]})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "stockbridge_sync_runs_total" in response.text

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_openapi_documents_error_envelope(self, client):
        schema = client.get("/openapi.json").json()

        assert "ErrorResponse" in schema["components"]["schemas"]
        transfer_post = schema["paths"]["/warehouse/transfer"]["post"]
        assert "409" in transfer_post["responses"]
