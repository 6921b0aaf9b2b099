"""Warehouse transfer tasks: scheduled execution and stuck-transfer recovery."""

import logging
from typing import Any, Dict

from celery import shared_task

from .base import BaseTask, get_worker_container, task_session


logger = logging.getLogger(__name__)


@shared_task(name="transfers.run_due", base=BaseTask, bind=True)
def run_due_transfers(self) -> Dict[str, Any]:
    """Execute scheduled transfers whose time has come."""
    container = get_worker_container()
    with task_session(container) as db:
        executed = container.transfer_service(db).run_due_transfers()

    if executed:
        logger.info(f"Executed {executed} scheduled transfers", extra={"operation": "run_due_transfers"})
    return {"executed": executed}


@shared_task(name="transfers.sweep_stuck", base=BaseTask, bind=True)
def sweep_stuck_transfers(self) -> Dict[str, Any]:
    container = get_worker_container()
    with task_session(container) as db:
        failed = container.transfer_service(db).sweep_stuck()

    if failed:
        logger.warning(f"Failed {failed} stuck transfers", extra={"operation": "sweep_stuck_transfers"})
    return {"failed": failed}
