"""Integration tests for warehouse registration and stock transfer endpoints."""

import pytest

from conftest import OTHER_SELLER_ID, add_stock, add_warehouse


pytestmark = pytest.mark.integration


class TestWarehouseEndpoints:

    def test_register_and_list(self, api_client):
        response = api_client.post("/v1/warehouses", json={
            "name": "Reno DC",
            "provider": "mock",
            "providerRef": "MOCK-WH-9",
            "location": "Reno, NV",
        })

        assert response.status_code == 201
        warehouse = response.json()
        assert warehouse["provider"] == "mock"
        assert warehouse["providerRef"] == "MOCK-WH-9"
        assert warehouse["active"] is True
        assert [w["id"] for w in api_client.get("/v1/warehouses").json()] == [warehouse["id"]]

    def test_duplicate_registration_is_rejected(self, api_client, mock_warehouse):
        response = api_client.post("/v1/warehouses", json={
            "name": "Again",
            "provider": "mock",
            "providerRef": "MOCK-WH-1",
        })
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_unknown_provider(self, api_client):
        response = api_client.post("/v1/warehouses", json={
            "name": "Nowhere",
            "provider": "nope",
            "providerRef": "X",
        })
        assert response.status_code == 400
        assert response.json()["code"] == "unknown_provider"

    def test_stock_lines(self, api_client, db_session, mock_warehouse):
        add_stock(db_session, mock_warehouse, "SKU-1", available=4, quantity=6)

        lines = api_client.get(f"/v1/warehouses/{mock_warehouse.id}/stock").json()

        assert lines == [{
            "productId": "SKU-1",
            "sku": "SKU-1",
            "providerRef": None,
            "quantity": 6,
            "availableQuantity": 4,
            "lastSyncedAt": lines[0]["lastSyncedAt"],
        }]

    def test_other_sellers_warehouse_is_not_found(self, api_client, db_session):
        foreign = add_warehouse(db_session, "mock", "MOCK-WH-X", seller_id=OTHER_SELLER_ID)
        response = api_client.get(f"/v1/warehouses/{foreign.id}/stock")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestTransferEndpoints:

    @pytest.fixture
    def stocked(self, db_session, connected_mock, mock_warehouse, mock_warehouse_2):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        return mock_warehouse, mock_warehouse_2

    def payload(self, source, target, quantity=4, **extra):
        body = {
            "productId": "SKU-1",
            "sourceWarehouseId": str(source.id),
            "targetWarehouseId": str(target.id),
            "quantity": quantity,
        }
        body.update(extra)
        return body

    def test_immediate_transfer(self, api_client, stocked):
        source, target = stocked

        response = api_client.post("/warehouse/transfer", json=self.payload(source, target))

        assert response.status_code == 201
        transfer = response.json()
        assert transfer["status"] == "completed"
        assert transfer["transferFee"] == "0.00"
        assert transfer["providerTransactionId"]
        assert transfer["requestId"] == response.headers["X-Request-ID"]

        source_lines = api_client.get(f"/v1/warehouses/{source.id}/stock").json()
        target_lines = api_client.get(f"/v1/warehouses/{target.id}/stock").json()
        assert source_lines[0]["availableQuantity"] == 6
        assert target_lines[0]["availableQuantity"] == 4

        fetched = api_client.get(f"/warehouse/transfer/{transfer['id']}").json()
        assert fetched["status"] == "completed"

    def test_cross_provider_transfer_is_charged(self, api_client, stocked, connected_acme, acme_warehouse):
        source, _ = stocked
        response = api_client.post("/warehouse/transfer", json=self.payload(source, acme_warehouse))
        assert response.status_code == 201
        assert response.json()["transferFee"] == "2.00"

    def test_insufficient_stock_envelope(self, api_client, stocked):
        source, target = stocked

        response = api_client.post("/warehouse/transfer", json=self.payload(source, target, quantity=50))

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "insufficient_stock"
        assert body["details"] == {"available": 10, "requested": 50}
        assert body["requestId"] == response.headers["X-Request-ID"]
        assert api_client.get("/warehouse/transfers").json() == []

    def test_non_positive_quantity_is_validation_error(self, api_client, stocked):
        source, target = stocked
        response = api_client.post("/warehouse/transfer", json=self.payload(source, target, quantity=0))
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_same_warehouse_is_invalid(self, api_client, stocked):
        source, _ = stocked
        response = api_client.post("/warehouse/transfer", json=self.payload(source, source))
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_warehouse"

    def test_scheduled_transfer_can_be_cancelled(self, api_client, stocked):
        source, target = stocked

        created = api_client.post(
            "/warehouse/transfer",
            json=self.payload(source, target, scheduledAt="2099-01-01T00:00:00Z"),
        ).json()
        assert created["status"] == "scheduled"
        assert created["scheduledAt"].startswith("2099-01-01T00:00:00")

        scheduled = api_client.get("/warehouse/transfers", params={"status": "scheduled"}).json()
        assert [t["id"] for t in scheduled] == [created["id"]]

        cancelled = api_client.post(f"/warehouse/transfer/{created['id']}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        again = api_client.post(f"/warehouse/transfer/{created['id']}/cancel")
        assert again.status_code == 409
        assert again.json()["code"] == "transfer_not_cancellable"

    def test_unknown_transfer(self, api_client):
        response = api_client.get("/warehouse/transfer/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["code"] == "transfer_not_found"
