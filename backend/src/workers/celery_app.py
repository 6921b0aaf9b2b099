"""Celery application and beat schedule.

The beat schedule drives every periodic job: the schedule tick, scheduled
transfers, webhook redelivery and the stale-state sweepers. Each job is
idempotent and safe to overlap with a slow previous run.

Usage:
    celery -A workers.celery_app worker --loglevel=INFO
    celery -A workers.celery_app beat --loglevel=INFO
"""

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from config import settings
from observability.logging_config import configure_logging


celery_app = Celery(
    "stockbridge",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "workers.sync_tasks",
        "workers.transfer_tasks",
        "workers.webhook_tasks",
        "workers.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "sync-schedule-tick": {
        "task": "sync.tick",
        "schedule": timedelta(seconds=settings.SCHEDULE_TICK_SECONDS),
        "options": {"expires": settings.SCHEDULE_TICK_SECONDS},
    },
    "sync-sweep-stale-runs": {
        "task": "sync.sweep_stale_runs",
        "schedule": timedelta(minutes=5),
    },
    "transfers-run-due": {
        "task": "transfers.run_due",
        "schedule": timedelta(seconds=settings.SCHEDULE_TICK_SECONDS),
        "options": {"expires": settings.SCHEDULE_TICK_SECONDS},
    },
    "transfers-sweep-stuck": {
        "task": "transfers.sweep_stuck",
        "schedule": timedelta(minutes=10),
    },
    "webhooks-retry-due": {
        "task": "webhooks.retry_due",
        "schedule": timedelta(seconds=30),
        "options": {"expires": 30},
    },
    "oauth-purge-expired-states": {
        "task": "oauth.purge_expired_states",
        "schedule": crontab(hour=3, minute=0),
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    # Connecting this signal stops Celery from installing its own root handler
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
