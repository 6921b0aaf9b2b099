"""Pydantic schemas for fulfillment order endpoints."""

from typing import Any, Optional

from pydantic import Field

from providers.ports import FulfillmentOrderRequest
from schemas.base import CamelModel, SuccessEnvelope


class OrderItemSchema(CamelModel):
    sku: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    name: Optional[str] = None


class FulfillmentOrderCreate(CamelModel):
    provider: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    items: list[OrderItemSchema] = Field(..., min_length=1)
    shipping_address: dict[str, Any]
    shipping_method: str = "standard"
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_request(self) -> FulfillmentOrderRequest:
        return FulfillmentOrderRequest(
            order_id=self.order_id,
            items=[item.model_dump(exclude_none=True) for item in self.items],
            shipping_address=self.shipping_address,
            shipping_method=self.shipping_method,
            metadata=self.metadata,
        )


class FulfillmentOrderResponse(SuccessEnvelope):
    provider: str
    order_id: str
    provider_order_id: str
    status: str
    tracking_number: Optional[str] = None
