"""Outbound webhook redelivery."""

import logging
from typing import Any, Dict

from celery import shared_task

from .base import BaseTask, get_worker_container, task_session


logger = logging.getLogger(__name__)


@shared_task(name="webhooks.retry_due", base=BaseTask, bind=True)
def retry_due_deliveries(self) -> Dict[str, Any]:
    """Attempt pending deliveries whose backoff window has elapsed.

    Deliveries that exhaust their attempts are dead-lettered by the dispatcher.
    """
    container = get_worker_container()
    with task_session(container) as db:
        attempted = container.dispatcher(db).retry_due()

    if attempted:
        logger.info(f"Retried {attempted} webhook deliveries", extra={"operation": "retry_due_deliveries"})
    return {"attempted": attempted}
