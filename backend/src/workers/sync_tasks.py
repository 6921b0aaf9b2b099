"""Sync engine tasks: schedule tick and stale run sweeping."""

import logging
from typing import Any, Dict

from celery import shared_task

from fulfillment import SyncOptions
from .base import BaseTask, get_worker_container, task_session


logger = logging.getLogger(__name__)


@shared_task(name="sync.tick", base=BaseTask, bind=True)
def schedule_tick(self) -> Dict[str, Any]:
    """Evaluate all enabled schedules and run the due ones.

    Returns:
        Dict with the number of schedules evaluated and per-outcome counts
    """
    container = get_worker_container()
    with task_session(container) as db:
        summary = container.schedule_manager(db).tick()

    logger.info(
        f"Schedule tick evaluated {summary.evaluated} schedules",
        extra={"operation": "schedule_tick", "outcomes": summary.outcomes},
    )
    return {"evaluated": summary.evaluated, "outcomes": summary.outcomes}


@shared_task(name="sync.sweep_stale_runs", base=BaseTask, bind=True)
def sweep_stale_runs(self) -> Dict[str, Any]:
    """Fail runs left running by a crashed worker and free their locks."""
    container = get_worker_container()
    with task_session(container) as db:
        swept = container.tracker(db).sweep_stale_runs()

    if swept:
        logger.warning(f"Swept {swept} stale sync runs", extra={"operation": "sweep_stale_runs"})
    return {"swept": swept}


@shared_task(name="sync.run_inventory", base=BaseTask, bind=True)
def run_inventory_sync(self, seller_id: str, providers: list, full_sync: bool = False) -> Dict[str, Any]:
    """Run a manual inventory sync off the request path."""
    container = get_worker_container()
    with task_session(container) as db:
        result = container.orchestrator(db).sync_inventory(
            seller_id,
            providers,
            options=SyncOptions(full_sync=full_sync),
        )
    return {
        "request_id": result.request_id,
        "sync_count": result.sync_count,
        "fail_count": result.fail_count,
    }
