"""SyncSchedule model - recurring inventory sync definitions"""

import uuid

from sqlalchemy import Column, Text, Boolean, Integer, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, UTCDateTime, utcnow


class SyncSchedule(Base):
    """
    Sync Schedule - cron or interval job per (seller, provider).

    Never deleted: disabling keeps run history auditable. next_run_at is the
    instant the ticker considers the schedule Due; it is recomputed after every
    run, or pushed forward by the backoff window when a failed run is retried.

    frequency: {"kind": "interval"|"cron", "value": "1h" | "PT1H" | "0 * * * *"}
    settings: {retryOnFailure, maxRetries, notifyOnCompletion, notifyOnFailure, skipWeekends}
    notifications: {email: [...], slack, webhook}
    filters: {warehouseIds: [...], categories: [...], productIds: [...]}
    """
    __tablename__ = "sync_schedule"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    provider_name = Column(Text, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    frequency_kind = Column(Text, nullable=False)
    frequency_value = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, default="UTC")
    settings_json = Column(PortableJSONB, nullable=False, default=dict)
    notifications_json = Column(PortableJSONB, nullable=False, default=dict)
    filters_json = Column(PortableJSONB, nullable=False, default=dict)
    state = Column(Text, nullable=False, default="idle", comment="idle, due, running, completed, failed")
    retry_count = Column(Integer, nullable=False, default=0)
    last_run_at = Column(UTCDateTime, nullable=True)
    last_run_status = Column(Text, nullable=True)
    next_run_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    runs = relationship("SyncRun", back_populates="schedule", order_by="SyncRun.started_at.desc()")

    __table_args__ = (
        CheckConstraint("frequency_kind IN ('interval', 'cron')", name="ck_sync_schedule_frequency_kind"),
        CheckConstraint(
            "state IN ('idle', 'due', 'running', 'completed', 'failed')",
            name="ck_sync_schedule_state"
        ),
        Index("idx_sync_schedule_due", "enabled", "next_run_at"),
        Index("idx_sync_schedule_seller", "seller_id"),
    )

    @validates("retry_count")
    def validate_retry_count(self, key, value):
        """Ensure retry_count is non-negative."""
        if value is not None and value < 0:
            raise ValueError("retry_count must be non-negative")
        return value

    @property
    def settings(self) -> dict:
        return self.settings_json or {}

    def __repr__(self):
        return (
            f"<SyncSchedule(id={self.id}, seller_id='{self.seller_id}', provider='{self.provider_name}', "
            f"frequency={self.frequency_kind}:{self.frequency_value}, state='{self.state}')>"
        )
