"""Background workers (Celery) for periodic sync, transfer and webhook jobs."""

from .base import BaseTask, get_worker_container, set_worker_container, task_session

__all__ = [
    "BaseTask",
    "get_worker_container",
    "set_worker_container",
    "task_session",
]
