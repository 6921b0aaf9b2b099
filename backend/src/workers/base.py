"""Shared plumbing for Celery tasks.

Every task runs with:
- a request id bound for its whole execution (the Celery task id), so log
  records from the task, the sync orchestrator and provider worker threads
  correlate
- the process-wide ServiceContainer, built lazily once per worker process
- its own database session, closed when the task returns
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from celery import Task
from celery.signals import worker_process_shutdown
from sqlalchemy.orm import Session

from container import ServiceContainer, build_container
from observability.request_id import request_id_scope


logger = logging.getLogger(__name__)

_container: Optional[ServiceContainer] = None


def get_worker_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_worker_container(container: Optional[ServiceContainer]) -> None:
    """Install a prebuilt container (tests, eager mode)."""
    global _container
    _container = container


@worker_process_shutdown.connect
def _close_container(**kwargs) -> None:
    global _container
    if _container is not None:
        _container.close()
        _container = None


@contextmanager
def task_session(container: ServiceContainer) -> Iterator[Session]:
    """Session for one task run. Services commit their own work."""
    db = container.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class BaseTask(Task):
    """Binds a request id around the task body.

    Usage:
        @shared_task(name="sync.tick", base=BaseTask, bind=True)
        def schedule_tick(self):
            container = get_worker_container()
            with task_session(container) as db:
                ...
    """

    def __call__(self, *args, **kwargs):
        request_id = getattr(self.request, "id", None)
        with request_id_scope(request_id):
            return super().__call__(*args, **kwargs)
