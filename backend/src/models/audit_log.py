"""AuditLog SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, Boolean, Uuid, Index

from .base import Base, PortableJSONB, UTCDateTime, utcnow


class AuditLog(Base):
    """AuditLog model for immutable security and operations event logging.

    Records connection changes, schedule edits, rejected transfers and
    security rejections (bad webhook signatures, replayed OAuth states).
    Entries are append-only and should never be updated or deleted.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_seller_id", "seller_id"),
        Index("ix_audit_log_seller_id_created_at", "seller_id", "created_at"),
        Index("ix_audit_log_action", "action"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=True, comment="NULL when the actor is not yet known (e.g. unsigned webhook)")
    action = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Text, nullable=True)
    security_event = Column(Boolean, nullable=False, default=False)
    metadata_json = Column(PortableJSONB, nullable=True)
    request_id = Column(Text, nullable=True)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

