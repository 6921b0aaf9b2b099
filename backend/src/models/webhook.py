"""Webhook models - inbound provider events, subscriber endpoints, outbound deliveries"""

import uuid
from enum import Enum

from sqlalchemy import (
    Column, Text, Boolean, Integer, Uuid, ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, UTCDateTime, utcnow


class WebhookDeliveryStatus(str, Enum):
    """Outbound delivery status."""
    PENDING = "pending"
    DELIVERED = "delivered"
    DEAD_LETTERED = "dead_lettered"


class WebhookEvent(Base):
    """Verified inbound provider event.

    payload_hash (sha256 of provider + raw body) makes re-delivery of the same
    signed payload resolve to the existing row. Rows are never mutated after
    insert.
    """
    __tablename__ = "webhook_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    source_provider = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    order_id = Column(Text, nullable=True)
    external_id = Column(Text, nullable=True, comment="Provider event id, when supplied")
    payload = Column(PortableJSONB, nullable=False)
    payload_hash = Column(Text, nullable=False)
    signature_valid = Column(Boolean, nullable=False, default=False)
    request_id = Column(Text, nullable=True)
    received_at = Column(UTCDateTime, nullable=False, default=utcnow)

    deliveries = relationship("WebhookDelivery", back_populates="event")

    __table_args__ = (
        UniqueConstraint("payload_hash", name="uq_webhook_event_payload_hash"),
        Index("idx_webhook_event_seller", "seller_id", "received_at"),
    )

    def __repr__(self):
        return (
            f"<WebhookEvent(id={self.id}, provider='{self.source_provider}', "
            f"event_type='{self.event_type}', signature_valid={self.signature_valid})>"
        )


class WebhookSubscription(Base):
    """Subscriber endpoint registered by a seller for one event type.

    event_type "*" receives every event. secret signs outbound deliveries
    (X-Webhook-Signature).
    """
    __tablename__ = "webhook_subscription"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    secret = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("seller_id", "event_type", "url", name="uq_webhook_subscription_endpoint"),
        Index("idx_webhook_subscription_lookup", "seller_id", "event_type", "active"),
    )

    def __repr__(self):
        return f"<WebhookSubscription(id={self.id}, event_type='{self.event_type}', url='{self.url}')>"


class WebhookDelivery(Base):
    """One outbound delivery of an event to one subscriber.

    attempt counts POSTs made so far; when it reaches the max attempt count
    without a 2xx the row is dead-lettered and kept for manual redelivery.
    """
    __tablename__ = "webhook_delivery"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    event_id = Column(Uuid, ForeignKey("webhook_event.id", ondelete="SET NULL"), nullable=True)
    subscription_id = Column(Uuid, ForeignKey("webhook_subscription.id", ondelete="CASCADE"), nullable=False)
    subscriber_url = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    payload = Column(PortableJSONB, nullable=False)
    dedupe_key = Column(Text, nullable=False, comment="event + subscriber, one delivery each")
    attempt = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default=WebhookDeliveryStatus.PENDING.value)
    last_status_code = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(UTCDateTime, nullable=True)
    next_attempt_at = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    event = relationship("WebhookEvent", back_populates="deliveries")
    subscription = relationship("WebhookSubscription")

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_webhook_delivery_dedupe"),
        CheckConstraint(
            "status IN ('pending', 'delivered', 'dead_lettered')",
            name="ck_webhook_delivery_status"
        ),
        Index("idx_webhook_delivery_due", "status", "next_attempt_at"),
        Index("idx_webhook_delivery_seller", "seller_id", "status"),
    )

    @validates("status")
    def validate_status(self, key, value):
        """Ensure status is valid."""
        valid = [s.value for s in WebhookDeliveryStatus]
        if value not in valid:
            raise ValueError(f"Invalid status: {value}. Must be one of: {', '.join(valid)}")
        return value

    def __repr__(self):
        return (
            f"<WebhookDelivery(id={self.id}, url='{self.subscriber_url}', attempt={self.attempt}, "
            f"status='{self.status}')>"
        )
