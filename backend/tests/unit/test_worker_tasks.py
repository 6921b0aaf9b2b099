"""Unit tests for the Celery task wrappers

Tasks are called in-process (no broker); the worker container is replaced with
the test container so each task opens its session on the in-memory database.
"""

from datetime import timedelta

import pytest

from conftest import SELLER_ID, add_stock
from models import OAuthState, SyncRun, SyncSchedule, WarehouseTransfer, utcnow
from workers import set_worker_container
from workers.maintenance_tasks import purge_expired_oauth_states
from workers.sync_tasks import run_inventory_sync, schedule_tick, sweep_stale_runs
from workers.transfer_tasks import run_due_transfers, sweep_stuck_transfers
from workers.webhook_tasks import retry_due_deliveries


@pytest.fixture(autouse=True)
def worker_container(container):
    set_worker_container(container)
    yield container
    set_worker_container(None)


class TestSyncTasks:

    def test_tick_runs_due_schedule(self, container, db_session, connected_mock, mock_warehouse):
        schedule = container.schedule_manager(db_session).create(SELLER_ID, {
            "name": "Hourly",
            "provider": "mock",
            "frequency": {"kind": "interval", "value": "1h"},
        })
        schedule.next_run_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        result = schedule_tick()

        assert result == {"evaluated": 1, "outcomes": {"completed": 1}}
        db_session.expire_all()
        assert db_session.get(SyncSchedule, schedule.id).last_run_status == "completed"

    def test_tick_with_nothing_due(self):
        assert schedule_tick() == {"evaluated": 0, "outcomes": {}}

    def test_manual_sync_binds_request_id(self, db_session, connected_mock, mock_warehouse):
        result = run_inventory_sync(SELLER_ID, ["mock"], full_sync=True)

        assert result["sync_count"] == 1
        assert result["fail_count"] == 0
        assert result["request_id"] not in (None, "no-request-id")
        run = db_session.query(SyncRun).one()
        assert run.request_id == result["request_id"]

    def test_sweep_with_no_stale_runs(self):
        assert sweep_stale_runs() == {"swept": 0}


class TestTransferTasks:

    def test_due_scheduled_transfer_is_executed(
        self, container, db_session, connected_mock, mock_warehouse, mock_warehouse_2
    ):
        add_stock(db_session, mock_warehouse, "SKU-1", available=10)
        transfer = container.transfer_service(db_session).create_transfer(
            seller_id=SELLER_ID,
            product_id="SKU-1",
            source_warehouse_id=mock_warehouse.id,
            target_warehouse_id=mock_warehouse_2.id,
            quantity=3,
            scheduled_at=utcnow() + timedelta(hours=1),
        )
        transfer.scheduled_at = utcnow() - timedelta(seconds=5)
        db_session.commit()

        assert run_due_transfers() == {"executed": 1}

        db_session.expire_all()
        assert db_session.get(WarehouseTransfer, transfer.id).status == "completed"

    def test_sweep_with_nothing_stuck(self):
        assert sweep_stuck_transfers() == {"failed": 0}


class TestHousekeepingTasks:

    def test_retry_with_nothing_pending(self):
        assert retry_due_deliveries() == {"attempted": 0}

    def test_purges_only_expired_states(self, db_session):
        now = utcnow()
        db_session.add_all([
            OAuthState(state="old", seller_id=SELLER_ID, provider_name="mock", sandbox=False,
                       redirect_uri="http://localhost/cb", expires_at=now - timedelta(minutes=1), created_at=now),
            OAuthState(state="fresh", seller_id=SELLER_ID, provider_name="mock", sandbox=False,
                       redirect_uri="http://localhost/cb", expires_at=now + timedelta(hours=1), created_at=now),
        ])
        db_session.commit()

        assert purge_expired_oauth_states() == {"purged": 1}
        assert [s.state for s in db_session.query(OAuthState).all()] == ["fresh"]
