"""SyncProgressTracker - durable source of truth for running syncs and locks.

All "is a sync running" questions and every exclusive lock (sync runs and
warehouse stock) are answered from the database, so a process restart never
loses lock visibility. Lock rows carry a lease; an expired lease can be taken
over by the next holder.

Lock operations commit the session they are given.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import SyncLock, SyncRun, utcnow
from observability.metrics import active_sync_runs
from .status import SyncRunStatus, validate_run_transition


logger = logging.getLogger(__name__)


def sync_lock_key(seller_id: str, provider: str) -> str:
    return f"sync:{seller_id}:{provider}"


def stock_lock_key(warehouse_id: Any, product_id: str) -> str:
    return f"stock:{warehouse_id}:{product_id}"


class SyncProgressTracker:
    """
    Tracks SyncRun lifecycle and owns the lease-based lock table.

    Usage:
        tracker = SyncProgressTracker(db, lease_seconds=900)
        run = tracker.start_run("seller-1", "shipbob", request_id=request_id)
        if run is None:
            ...  # another run holds the lock
        tracker.complete_run(run, items_synced=12, items_failed=0)
    """

    def __init__(self, db: Session, lease_seconds: int = 900, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.lease_seconds = lease_seconds
        self.clock = clock

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def acquire_lock(
        self,
        lock_key: str,
        holder: str,
        lease_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Try to take an exclusive lease on lock_key.

        Returns:
            True if `holder` now owns the lock, False if someone else does
        """
        now = now or self.clock()
        expires_at = now + timedelta(seconds=lease_seconds or self.lease_seconds)

        # Take over an expired lease
        taken = self.db.query(SyncLock).filter(
            SyncLock.lock_key == lock_key,
            SyncLock.expires_at <= now,
        ).update(
            {"holder": holder, "acquired_at": now, "expires_at": expires_at},
            synchronize_session=False,
        )
        if taken == 1:
            self.db.commit()
            logger.info(f"Took over expired lock {lock_key}", extra={"operation": "lock"})
            return True

        if self.db.query(SyncLock).filter(SyncLock.lock_key == lock_key).count():
            self.db.commit()
            return False

        self.db.add(SyncLock(lock_key=lock_key, holder=holder, acquired_at=now, expires_at=expires_at))
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the insert race to another holder
            self.db.rollback()
            return False
        return True

    def release_lock(self, lock_key: str, holder: str) -> bool:
        """Release a lock only if `holder` still owns it."""
        deleted = self.db.query(SyncLock).filter(
            SyncLock.lock_key == lock_key,
            SyncLock.holder == holder,
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted == 1

    def force_release(self, lock_key: str) -> None:
        self.db.query(SyncLock).filter(SyncLock.lock_key == lock_key).delete(synchronize_session=False)
        self.db.commit()

    def is_locked(self, lock_key: str, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return self.db.query(SyncLock).filter(
            SyncLock.lock_key == lock_key,
            SyncLock.expires_at > now,
        ).count() > 0

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start_run(
        self,
        seller_id: str,
        provider: str,
        schedule_id: Optional[UUID] = None,
        request_id: Optional[str] = None,
        trigger: str = "manual",
        now: Optional[datetime] = None,
    ) -> Optional[SyncRun]:
        """
        Acquire the (seller, provider) lock and create a running SyncRun.

        Returns:
            The running SyncRun, or None when another run holds the lock
        """
        now = now or self.clock()
        run_id = uuid.uuid4()
        if not self.acquire_lock(sync_lock_key(seller_id, provider), str(run_id), now=now):
            logger.info(
                "Sync already running, skipping",
                extra={"seller_id": seller_id, "provider": provider, "status": "skipped"},
            )
            return None

        self._close_orphaned_runs(seller_id, provider, now)

        run = SyncRun(
            id=run_id,
            schedule_id=schedule_id,
            seller_id=seller_id,
            provider_name=provider,
            request_id=request_id,
            trigger=trigger,
            status=SyncRunStatus.PENDING.value,
            created_at=now,
        )
        validate_run_transition(SyncRunStatus.PENDING, SyncRunStatus.RUNNING)
        run.status = SyncRunStatus.RUNNING.value
        run.started_at = now
        self.db.add(run)
        self.db.commit()
        active_sync_runs.inc()

        logger.info(
            "Sync run started",
            extra={"seller_id": seller_id, "provider": provider, "sync_run_id": str(run.id), "status": "running"},
        )
        return run

    def record_progress(self, run: SyncRun, items_total: int, items_synced: int, items_failed: int) -> None:
        run.items_total = items_total
        run.items_synced = items_synced
        run.items_failed = items_failed
        self.db.commit()

    def complete_run(
        self,
        run: SyncRun,
        items_synced: int,
        items_failed: int = 0,
        items_total: Optional[int] = None,
        errors: Optional[list] = None,
        now: Optional[datetime] = None,
    ) -> SyncRun:
        validate_run_transition(SyncRunStatus(run.status), SyncRunStatus.COMPLETED)
        run.status = SyncRunStatus.COMPLETED.value
        run.items_synced = items_synced
        run.items_failed = items_failed
        run.items_total = items_total if items_total is not None else items_synced + items_failed
        run.errors_json = errors or []
        if items_failed:
            run.error_summary = f"{items_failed} item(s) could not be synced"
        return self._finish(run, now)

    def fail_run(
        self,
        run: SyncRun,
        error_summary: str,
        errors: Optional[list] = None,
        now: Optional[datetime] = None,
    ) -> SyncRun:
        validate_run_transition(SyncRunStatus(run.status), SyncRunStatus.FAILED)
        run.status = SyncRunStatus.FAILED.value
        run.error_summary = error_summary
        run.errors_json = errors or []
        return self._finish(run, now)

    def _finish(self, run: SyncRun, now: Optional[datetime]) -> SyncRun:
        run.finished_at = now or self.clock()
        self.db.commit()
        self.release_lock(sync_lock_key(run.seller_id, run.provider_name), str(run.id))
        active_sync_runs.dec()
        logger.info(
            f"Sync run {run.status}",
            extra={
                "seller_id": run.seller_id,
                "provider": run.provider_name,
                "sync_run_id": str(run.id),
                "status": run.status,
            },
        )
        return run

    def _close_orphaned_runs(self, seller_id: str, provider: str, now: datetime) -> None:
        """Fail runs still marked running whose lease was taken over."""
        orphans = self.db.query(SyncRun).filter(
            SyncRun.seller_id == seller_id,
            SyncRun.provider_name == provider,
            SyncRun.status == SyncRunStatus.RUNNING.value,
        ).all()
        for orphan in orphans:
            orphan.status = SyncRunStatus.FAILED.value
            orphan.finished_at = now
            orphan.error_summary = "Lock lease expired before the run finished"
            active_sync_runs.dec()
            logger.warning(
                "Closed orphaned sync run",
                extra={"seller_id": seller_id, "provider": provider, "sync_run_id": str(orphan.id)},
            )
        if orphans:
            self.db.commit()

    def sweep_stale_runs(self, now: Optional[datetime] = None) -> int:
        """
        Fail running runs whose lock is gone, expired, or owned by another run.

        Returns:
            Number of runs failed
        """
        now = now or self.clock()
        swept = 0
        for run in self.db.query(SyncRun).filter(SyncRun.status == SyncRunStatus.RUNNING.value).all():
            key = sync_lock_key(run.seller_id, run.provider_name)
            lock = self.db.query(SyncLock).filter(SyncLock.lock_key == key).first()
            if lock is not None and lock.holder == str(run.id) and lock.expires_at > now:
                continue
            run.status = SyncRunStatus.FAILED.value
            run.finished_at = now
            run.error_summary = "Sync run exceeded its lock lease"
            if lock is not None and lock.holder == str(run.id):
                self.db.delete(lock)
            active_sync_runs.dec()
            swept += 1
        if swept:
            self.db.commit()
            logger.warning(f"Swept {swept} stale sync run(s)", extra={"operation": "sweep_stale_runs"})
        return swept

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_run(self, run_id: UUID, seller_id: str) -> Optional[SyncRun]:
        return self.db.query(SyncRun).filter(
            SyncRun.id == run_id,
            SyncRun.seller_id == seller_id,
        ).first()

    def latest_run(self, seller_id: str, provider: str) -> Optional[SyncRun]:
        return self.db.query(SyncRun).filter(
            SyncRun.seller_id == seller_id,
            SyncRun.provider_name == provider,
        ).order_by(SyncRun.created_at.desc()).first()

    def status(self, seller_id: str, run_id: Optional[UUID] = None, provider: Optional[str] = None) -> str:
        """Best-effort status lookup, "unknown" when nothing is tracked."""
        run = None
        if run_id is not None:
            run = self.get_run(run_id, seller_id)
            if run is not None and provider and run.provider_name != provider:
                run = None
        elif provider:
            run = self.latest_run(seller_id, provider)
        return run.status if run is not None else "unknown"

    def active_runs(self, seller_id: str) -> list[SyncRun]:
        return self.db.query(SyncRun).filter(
            SyncRun.seller_id == seller_id,
            SyncRun.status == SyncRunStatus.RUNNING.value,
        ).order_by(SyncRun.started_at.desc()).all()

    def is_sync_running(self, seller_id: str, provider: str, now: Optional[datetime] = None) -> bool:
        return self.is_locked(sync_lock_key(seller_id, provider), now)
