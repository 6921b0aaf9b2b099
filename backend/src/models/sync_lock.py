"""SyncLock model - durable leased locks for sync runs and stock mutations"""

from sqlalchemy import Column, Text, Index

from .base import Base, UTCDateTime, utcnow


class SyncLock(Base):
    """Exclusive lease on a named resource.

    lock_key is "sync:{seller_id}:{provider}" for sync runs and
    "stock:{warehouse_id}:{product_id}" for warehouse transfers. A lock whose
    expires_at has passed may be taken over by another holder, so a crashed
    worker never blocks a resource forever.
    """
    __tablename__ = "sync_lock"
    __table_args__ = (
        Index("idx_sync_lock_expires", "expires_at"),
    )

    lock_key = Column(Text, primary_key=True)
    holder = Column(Text, nullable=False)
    acquired_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<SyncLock(lock_key='{self.lock_key}', holder='{self.holder}', expires_at={self.expires_at})>"
