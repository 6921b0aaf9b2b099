"""Request ID management for cross-system correlation.

The request id travels in a ContextVar so it reaches every log record and
metric emitted while serving one API call, one Celery task or one sync run.
Provider worker threads receive it explicitly (contextvars are not inherited
by ThreadPoolExecutor workers) via copy_context().
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID (UUID v4)."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get current request ID from context, or "no-request-id" if not set."""
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def ensure_request_id(request_id: Optional[str] = None) -> str:
    """Use the caller-supplied id, else the one already in context, else a new one.

    The resolved id is stored in the context and returned.
    """
    resolved = request_id or request_id_var.get() or generate_request_id()
    request_id_var.set(resolved)
    return resolved


@contextmanager
def request_id_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request id for the duration of a block (used by Celery tasks)."""
    token = request_id_var.set(request_id or generate_request_id())
    try:
        yield request_id_var.get()
    finally:
        request_id_var.reset(token)
