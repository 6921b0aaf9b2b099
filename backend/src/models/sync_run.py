"""SyncRun model - one inventory reconciliation against one provider"""

import uuid

from sqlalchemy import Column, Text, Integer, Uuid, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, UTCDateTime, utcnow


class SyncRun(Base):
    """
    Sync Run - pending -> running -> completed|failed, immutable once terminal.

    At most one running row per (seller_id, provider_name); the sync lock held
    by SyncProgressTracker guards the pending -> running transition.
    """
    __tablename__ = "sync_run"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("sync_schedule.id", ondelete="SET NULL"), nullable=True)
    seller_id = Column(Text, nullable=False)
    provider_name = Column(Text, nullable=False)
    request_id = Column(Text, nullable=True, comment="Correlation id echoed in logs and responses")
    trigger = Column(Text, nullable=False, default="manual", comment="manual or schedule")
    status = Column(Text, nullable=False, default="pending")
    items_total = Column(Integer, nullable=False, default=0)
    items_synced = Column(Integer, nullable=False, default=0)
    items_failed = Column(Integer, nullable=False, default=0)
    error_summary = Column(Text, nullable=True)
    errors_json = Column(PortableJSONB, nullable=False, default=list)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    started_at = Column(UTCDateTime, nullable=True)
    finished_at = Column(UTCDateTime, nullable=True)

    schedule = relationship("SyncSchedule", back_populates="runs")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="ck_sync_run_status"
        ),
        Index("idx_sync_run_seller_provider", "seller_id", "provider_name", text("started_at DESC")),
        Index("idx_sync_run_schedule", "schedule_id"),
        Index("idx_sync_run_status", "status"),
    )

    @validates("items_synced", "items_failed", "items_total")
    def validate_counts(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} must be non-negative")
        return value

    @property
    def percentage(self) -> float:
        if not self.items_total:
            return 100.0 if self.status == "completed" else 0.0
        processed = self.items_synced + self.items_failed
        return round(100.0 * processed / self.items_total, 2)

    def __repr__(self):
        return (
            f"<SyncRun(id={self.id}, seller_id='{self.seller_id}', provider='{self.provider_name}', "
            f"status='{self.status}', items_synced={self.items_synced}, items_failed={self.items_failed})>"
        )
