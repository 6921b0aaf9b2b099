"""Unit tests for the warehouse transfer saga"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import OTHER_SELLER_ID, SELLER_ID, add_stock, add_warehouse, connect
from errors import (
    InsufficientStock,
    InvalidWarehouse,
    ResourceLocked,
    TransferNotCancellable,
    ValidationFailed,
)
from models import AuditLog, SyncLock, WarehouseStock, WarehouseTransfer, utcnow
from sync.progress import stock_lock_key
from transfers import compute_transfer_fee


def stock(db, warehouse, product_id="SKU-1"):
    line = db.query(WarehouseStock).filter(
        WarehouseStock.warehouse_id == warehouse.id,
        WarehouseStock.product_id == product_id,
    ).first()
    if line is not None:
        db.refresh(line)
    return line


@pytest.fixture
def service(container, db_session):
    return container.transfer_service(db_session)


class TestTransferFee:

    def test_same_provider_is_free(self):
        assert compute_transfer_fee("mock", "mock", 10, Decimal("0.50")) == Decimal("0.00")

    def test_cross_provider_per_unit(self):
        assert compute_transfer_fee("mock", "acme", 4, Decimal("0.50")) == Decimal("2.00")

    def test_rounded_to_cents(self):
        assert compute_transfer_fee("mock", "acme", 3, Decimal("0.335")) == Decimal("1.01")


class TestCreateTransfer:

    def test_successful_transfer_moves_stock(
        self, service, db_session, notifier, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)

        transfer = service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 4)

        assert transfer.status == "completed"
        assert transfer.transfer_fee == Decimal("0.00")
        assert transfer.provider_transaction_id.startswith("mock-tx-")
        assert stock(db_session, mock_warehouse).available_quantity == 6
        assert stock(db_session, mock_warehouse_2).available_quantity == 4
        assert notifier.types() == ["warehouse_transfer"]
        assert db_session.query(SyncLock).count() == 0

    def test_cross_provider_transfer_charges_fee(
        self, service, db_session, connected_mock, connected_acme, mock_warehouse, acme_warehouse
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        transfer = service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, acme_warehouse.id, 4)
        assert transfer.transfer_fee == Decimal("2.00")

    def test_insufficient_stock_is_rejected_and_audited(
        self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=3)

        with pytest.raises(InsufficientStock) as exc_info:
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 5)

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 5
        assert db_session.query(WarehouseTransfer).count() == 0
        assert stock(db_session, mock_warehouse).available_quantity == 3
        audit = db_session.query(AuditLog).filter(AuditLog.action == "transfer.rejected").one()
        assert audit.metadata_json["available"] == 3
        assert db_session.query(SyncLock).count() == 0

    def test_provider_failure_leaves_stock_untouched(
        self, container, service, db_session, notifier, mock_warehouse, mock_warehouse_2
    ):
        connect(container, db_session, "mock", mode="transfer_rejected")
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)

        transfer = service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 4)

        assert transfer.status == "failed"
        assert transfer.error_message
        assert stock(db_session, mock_warehouse).available_quantity == 10
        assert stock(db_session, mock_warehouse_2) is None
        assert notifier.types() == ["warehouse_transfer_failed"]
        assert db_session.query(SyncLock).count() == 0

    def test_source_line_shrunk_during_provider_call_fails_transfer(
        self, service, db_session, mock_provider, connected_mock, mock_warehouse, mock_warehouse_2, monkeypatch
    ):
        line = add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        provider_transfer = mock_provider.transfer_stock

        def transfer_then_overwrite(*args, **kwargs):
            result = provider_transfer(*args, **kwargs)
            db_session.query(WarehouseStock).filter(WarehouseStock.id == line.id).update(
                {"quantity": 3, "available_quantity": 3}
            )
            db_session.commit()
            return result

        monkeypatch.setattr(mock_provider, "transfer_stock", transfer_then_overwrite)

        transfer = service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 4)

        assert transfer.status == "failed"
        assert "local stock update failed" in transfer.error_message
        assert stock(db_session, mock_warehouse).available_quantity == 3
        assert stock(db_session, mock_warehouse_2) is None
        assert db_session.query(SyncLock).count() == 0

    def test_held_stock_lock_rejects_concurrent_transfer(
        self, container, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        container.tracker(db_session).acquire_lock(stock_lock_key(mock_warehouse.id, "SKU-1"), "other-transfer")

        with pytest.raises(ResourceLocked):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 1)

    def test_warehouse_validation(self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2):
        with pytest.raises(InvalidWarehouse):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse.id, 1)

        foreign = add_warehouse(db_session, "mock", "MOCK-WH-9", seller_id=OTHER_SELLER_ID)
        with pytest.raises(InvalidWarehouse):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, foreign.id, 1)

        mock_warehouse_2.active = False
        db_session.commit()
        with pytest.raises(InvalidWarehouse):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 1)

    def test_unconnected_integration_rejected(self, service, connected_mock, mock_warehouse, acme_warehouse):
        with pytest.raises(InvalidWarehouse):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, acme_warehouse.id, 1)

    def test_quantity_must_be_positive(self, service, connected_mock, mock_warehouse, mock_warehouse_2):
        with pytest.raises(ValidationFailed):
            service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 0)


class TestScheduledTransfers:

    def test_future_transfer_is_scheduled_then_run(
        self, service, db_session, mock_provider, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        run_at = utcnow() + timedelta(hours=2)

        transfer = service.create_transfer(
            SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 4, scheduled_at=run_at
        )

        assert transfer.status == "scheduled"
        assert stock(db_session, mock_warehouse).available_quantity == 10
        assert not [c for c in mock_provider.calls if c[0] == "transfer_stock"]
        assert db_session.query(SyncLock).count() == 0

        assert service.run_due_transfers(now=run_at - timedelta(minutes=1)) == 0
        assert service.run_due_transfers(now=run_at + timedelta(minutes=1)) == 1
        db_session.refresh(transfer)
        assert transfer.status == "completed"
        assert stock(db_session, mock_warehouse).available_quantity == 6

    def test_scheduled_transfer_fails_when_stock_gone(
        self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        line = add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        run_at = utcnow() + timedelta(hours=1)
        transfer = service.create_transfer(
            SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 8, scheduled_at=run_at
        )

        line.available_quantity = 2
        db_session.commit()

        service.run_due_transfers(now=run_at)
        db_session.refresh(transfer)
        assert transfer.status == "failed"
        assert "Insufficient stock" in transfer.error_message

    def test_cancel_scheduled_transfer(self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        transfer = service.create_transfer(
            SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 1,
            scheduled_at=utcnow() + timedelta(days=1),
        )

        cancelled = service.cancel(SELLER_ID, transfer.id)

        assert cancelled.status == "cancelled"
        assert service.run_due_transfers(now=utcnow() + timedelta(days=2)) == 0

    def test_only_scheduled_transfers_can_be_cancelled(
        self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        transfer = service.create_transfer(SELLER_ID, "SKU-1", mock_warehouse.id, mock_warehouse_2.id, 1)
        with pytest.raises(TransferNotCancellable):
            service.cancel(SELLER_ID, transfer.id)

    def test_sweep_stuck_processing_transfers(
        self, service, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        stuck = WarehouseTransfer(
            seller_id=SELLER_ID,
            product_id="SKU-1",
            sku="SKU-1",
            source_warehouse_id=mock_warehouse.id,
            target_warehouse_id=mock_warehouse_2.id,
            quantity=1,
            transfer_fee=Decimal("0.00"),
            status="processing",
            processing_started_at=utcnow() - timedelta(hours=2),
            created_at=utcnow() - timedelta(hours=2),
        )
        db_session.add(stuck)
        db_session.commit()

        assert service.sweep_stuck() == 1
        assert stuck.status == "failed"
