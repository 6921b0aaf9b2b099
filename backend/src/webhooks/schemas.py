"""Pydantic schemas for webhook endpoints."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field

from schemas.base import CamelModel, SuccessEnvelope


class WebhookAcceptedResponse(SuccessEnvelope):
    event_id: UUID
    event_type: str
    duplicate: bool = Field(False, description="True when this body was already received")
    deliveries: int = Field(0, description="Subscriber deliveries created by this call")


class SubscriptionCreateRequest(CamelModel):
    event_type: str = Field(..., min_length=1, description='Event type, or "*" for every event')
    url: str = Field(..., min_length=8)
    secret: Optional[str] = Field(None, min_length=16, description="Signing secret; generated when omitted")


class SubscriptionResponse(CamelModel):
    id: UUID
    event_type: str
    url: str
    active: bool
    created_at: datetime


class SubscriptionCreatedResponse(SubscriptionResponse):
    secret: str = Field(..., description="Shown once; verifies X-Webhook-Signature")


class DeliveryResponse(CamelModel):
    id: UUID
    event_id: Optional[UUID] = None
    subscription_id: UUID
    subscriber_url: str
    event_type: str
    attempt: int
    status: Literal["pending", "delivered", "dead_lettered"]
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    payload: dict[str, Any]
