"""Housekeeping tasks."""

import logging
from typing import Any, Dict

from celery import shared_task

from .base import BaseTask, get_worker_container, task_session


logger = logging.getLogger(__name__)


@shared_task(name="oauth.purge_expired_states", base=BaseTask, bind=True)
def purge_expired_oauth_states(self) -> Dict[str, Any]:
    container = get_worker_container()
    with task_session(container) as db:
        purged = container.oauth_connector(db).purge_expired_states()

    logger.info(f"Purged {purged} expired OAuth states", extra={"operation": "purge_expired_oauth_states"})
    return {"purged": purged}
