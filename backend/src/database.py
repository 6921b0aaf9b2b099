"""Engine and session factory.

API requests get a session per request through ``get_db``. Celery tasks and
scripts open their own through ``session_scope``.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings


def build_engine(database_url: str, pool_size: int = 5, max_overflow: int = 10) -> Engine:
    if database_url.startswith("sqlite"):
        # SQLite (tests, local tooling) has no server-side pool to size
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


engine = build_engine(settings.DATABASE_URL, settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW)

# Services commit explicitly and keep using the returned rows afterwards
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """Session that commits on success and rolls back on error.

        with session_scope() as db:
            issue_api_key(db, "seller-123")
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
