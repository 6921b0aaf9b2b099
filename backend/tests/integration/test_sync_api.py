"""Integration tests for the inventory sync and schedule endpoints

Tests cover:
- POST /v1/inventory/sync with per-provider success and failure
- Sync status and progress lookups
- Schedule create/list/update/runs
"""

import pytest
from fastapi.testclient import TestClient

from conftest import SELLER_ID
from errors import ProviderUnavailable


pytestmark = pytest.mark.integration


class TestSyncEndpoint:

    def test_sync_reports_successes_and_failures(
        self, api_client: TestClient, acme_provider, connected_mock, connected_acme, mock_warehouse
    ):
        acme_provider.fail_with = ProviderUnavailable("acme down", provider="acme")

        response = api_client.post("/v1/inventory/sync", json={
            "providers": ["mock", "acme"],
            "options": {"fullSync": True},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["syncCount"] == 1
        assert body["failCount"] == 1
        assert body["syncs"][0]["provider"] == "mock"
        assert body["syncs"][0]["itemsSynced"] == 2
        assert body["failures"][0]["errorCode"] == "provider_unavailable"
        assert body["requestId"] == response.headers["X-Request-ID"]

    def test_request_id_header_is_propagated(self, api_client, connected_mock, mock_warehouse):
        response = api_client.post(
            "/v1/inventory/sync",
            json={"providers": ["mock"]},
            headers={"X-Request-ID": "trace-abc-123"},
        )
        assert response.headers["X-Request-ID"] == "trace-abc-123"
        assert response.json()["requestId"] == "trace-abc-123"

    def test_unknown_provider_is_400(self, api_client):
        response = api_client.post("/v1/inventory/sync", json={"providers": ["nope"]})
        assert response.status_code == 400
        assert response.json()["code"] == "unknown_provider"

    def test_empty_provider_list_is_validation_error(self, api_client):
        response = api_client.post("/v1/inventory/sync", json={"providers": []})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "validation_error"
        assert body["details"]["errors"]

    def test_sync_status(self, api_client, connected_mock, mock_warehouse):
        assert api_client.get("/v1/inventory/sync", params={"provider": "mock"}).json()["status"] == "unknown"

        sync_id = api_client.post("/v1/inventory/sync", json={"providers": ["mock"]}).json()["syncs"][0]["syncId"]

        by_provider = api_client.get("/v1/inventory/sync", params={"provider": "mock"}).json()
        assert by_provider["status"] == "completed"
        by_id = api_client.get("/v1/inventory/sync", params={"syncId": sync_id}).json()
        assert by_id["status"] == "completed"

        progress = api_client.get("/v1/inventory/sync/progress", params={"syncId": sync_id}).json()
        assert progress["run"]["percentage"] == 100.0
        assert progress["activeRuns"] == []

    def test_unparseable_sync_id_is_unknown(self, api_client, connected_mock):
        response = api_client.get("/v1/inventory/sync", params={"syncId": "not-a-uuid"})
        assert response.status_code == 200
        assert response.json()["status"] == "unknown"
        assert response.json().get("syncId") is None

        progress = api_client.get("/v1/inventory/sync/progress", params={"syncId": "not-a-uuid"})
        assert progress.status_code == 200
        assert progress.json()["run"] is None


class TestScheduleEndpoints:

    def create(self, client, **overrides):
        payload = {
            "name": "Hourly mock",
            "provider": "mock",
            "frequency": {"kind": "interval", "value": "1h"},
            "settings": {"maxRetries": 2},
        }
        payload.update(overrides)
        return client.post("/v1/inventory/schedule", json=payload)

    def test_create_and_fetch(self, api_client):
        response = self.create(api_client)

        assert response.status_code == 201
        schedule = response.json()
        assert schedule["provider"] == "mock"
        assert schedule["state"] == "idle"
        assert schedule["settings"]["maxRetries"] == 2
        assert schedule["settings"]["retryOnFailure"] is True
        assert schedule["nextRunAt"]

        fetched = api_client.get(f"/v1/inventory/schedule/{schedule['id']}").json()
        assert fetched["id"] == schedule["id"]
        assert [s["id"] for s in api_client.get("/v1/inventory/schedule").json()] == [schedule["id"]]

    def test_invalid_frequency(self, api_client):
        response = self.create(api_client, frequency={"kind": "interval", "value": "every now and then"})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_frequency"

    def test_disable_schedule(self, api_client):
        schedule_id = self.create(api_client).json()["id"]
        response = api_client.patch(f"/v1/inventory/schedule/{schedule_id}", json={"enabled": False})
        assert response.status_code == 200
        assert response.json()["enabled"] is False
        assert api_client.get("/v1/inventory/schedule", params={"enabled": "true"}).json() == []

    def test_schedule_not_found(self, api_client):
        response = api_client.get("/v1/inventory/schedule/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["code"] == "schedule_not_found"

    def test_schedule_runs(self, api_client, container, db_session, connected_mock, mock_warehouse):
        schedule_id = self.create(api_client).json()["id"]
        manager = container.schedule_manager(db_session)
        schedule = manager.list_schedules(SELLER_ID)[0]
        manager.tick(now=schedule.next_run_at)

        runs = api_client.get(f"/v1/inventory/schedule/{schedule_id}/runs").json()
        assert len(runs) == 1
        assert runs[0]["trigger"] == "schedule"
        assert runs[0]["status"] == "completed"
