"""ApiKey model - hashed API keys bound to a seller"""

import uuid

from sqlalchemy import Column, Text, Boolean, Uuid, Index

from .base import Base, UTCDateTime, utcnow


class ApiKey(Base):
    """API key for the inbound API.

    Only the SHA-256 hex digest of the key is stored; the plaintext is shown
    once when the key is issued.
    """
    __tablename__ = "api_key"
    __table_args__ = (
        Index("idx_api_key_hash", "key_hash", unique=True),
        Index("idx_api_key_seller", "seller_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False, default="default")
    key_hash = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    last_used_at = Column(UTCDateTime, nullable=True)

    def __repr__(self):
        return f"<ApiKey(id={self.id}, seller_id='{self.seller_id}', name='{self.name}', active={self.active})>"
