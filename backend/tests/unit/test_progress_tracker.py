"""Unit tests for SyncProgressTracker locks and run lifecycle"""

from datetime import datetime, timedelta, timezone

import pytest

from errors import StateTransitionError
from models import SyncLock, SyncRun
from sync.progress import SyncProgressTracker, stock_lock_key, sync_lock_key
from sync.status import SyncRunStatus


T0 = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracker(db_session) -> SyncProgressTracker:
    return SyncProgressTracker(db_session, lease_seconds=60, clock=lambda: T0)


class TestLocks:

    def test_lock_is_exclusive(self, tracker):
        assert tracker.acquire_lock("k", "a", now=T0) is True
        assert tracker.acquire_lock("k", "b", now=T0 + timedelta(seconds=30)) is False
        assert tracker.is_locked("k", now=T0 + timedelta(seconds=30)) is True

    def test_expired_lease_can_be_taken_over(self, tracker, db_session):
        assert tracker.acquire_lock("k", "a", now=T0) is True
        assert tracker.acquire_lock("k", "b", now=T0 + timedelta(seconds=61)) is True
        assert db_session.query(SyncLock).one().holder == "b"

    def test_release_only_by_holder(self, tracker):
        tracker.acquire_lock("k", "a", now=T0)
        assert tracker.release_lock("k", "b") is False
        assert tracker.release_lock("k", "a") is True
        assert tracker.acquire_lock("k", "b", now=T0) is True

    def test_lock_keys(self):
        assert sync_lock_key("s1", "mock") == "sync:s1:mock"
        assert stock_lock_key("wh", "p1") == "stock:wh:p1"


class TestRunLifecycle:

    def test_start_run_holds_lock(self, tracker):
        run = tracker.start_run("s1", "mock", request_id="req-1")
        assert run.status == SyncRunStatus.RUNNING.value
        assert run.request_id == "req-1"
        assert tracker.is_sync_running("s1", "mock", now=T0) is True
        assert tracker.start_run("s1", "mock") is None

    def test_runs_for_other_providers_are_independent(self, tracker):
        assert tracker.start_run("s1", "mock") is not None
        assert tracker.start_run("s1", "acme") is not None
        assert tracker.start_run("s2", "mock") is not None

    def test_complete_releases_lock(self, tracker):
        run = tracker.start_run("s1", "mock")
        tracker.complete_run(run, items_synced=3, items_failed=1)
        assert run.status == SyncRunStatus.COMPLETED.value
        assert run.items_total == 4
        assert run.error_summary
        assert tracker.is_sync_running("s1", "mock", now=T0) is False

    def test_terminal_runs_are_immutable(self, tracker):
        run = tracker.start_run("s1", "mock")
        tracker.fail_run(run, "boom")
        with pytest.raises(StateTransitionError):
            tracker.complete_run(run, items_synced=1)

    def test_takeover_fails_orphaned_run(self, tracker, db_session):
        first = tracker.start_run("s1", "mock", now=T0)
        second = tracker.start_run("s1", "mock", now=T0 + timedelta(seconds=120))
        assert second is not None
        db_session.refresh(first)
        assert first.status == SyncRunStatus.FAILED.value

    def test_sweep_stale_runs(self, tracker, db_session):
        run = tracker.start_run("s1", "mock", now=T0)
        assert tracker.sweep_stale_runs(now=T0 + timedelta(seconds=30)) == 0
        assert tracker.sweep_stale_runs(now=T0 + timedelta(seconds=90)) == 1
        db_session.refresh(run)
        assert run.status == SyncRunStatus.FAILED.value
        assert db_session.query(SyncLock).count() == 0


class TestStatus:

    def test_unknown_when_nothing_tracked(self, tracker):
        assert tracker.status("s1", provider="mock") == "unknown"

    def test_status_by_provider_and_run(self, tracker):
        run = tracker.start_run("s1", "mock")
        assert tracker.status("s1", provider="mock") == "running"
        assert tracker.status("s1", run_id=run.id) == "running"
        assert tracker.status("s1", run_id=run.id, provider="acme") == "unknown"
        assert tracker.status("s2", run_id=run.id) == "unknown"

    def test_active_runs(self, tracker, db_session):
        tracker.start_run("s1", "mock")
        tracker.start_run("s1", "acme")
        assert {r.provider_name for r in tracker.active_runs("s1")} == {"mock", "acme"}
        assert db_session.query(SyncRun).count() == 2
