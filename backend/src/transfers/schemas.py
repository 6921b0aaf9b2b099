"""Pydantic schemas for warehouse and transfer endpoints."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field, field_serializer, field_validator

from schemas.base import CamelModel


class TransferRequest(CamelModel):
    product_id: str = Field(..., min_length=1)
    source_warehouse_id: UUID
    target_warehouse_id: UUID
    quantity: int = Field(..., gt=0)
    scheduled_at: Optional[datetime] = Field(None, description="Run later instead of now (ISO-8601)")

    @field_validator("scheduled_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TransferResponse(CamelModel):
    id: UUID
    product_id: str
    sku: Optional[str] = None
    source_warehouse_id: UUID
    target_warehouse_id: UUID
    quantity: int
    transfer_fee: Decimal
    status: str
    provider_transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    request_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    @field_serializer("transfer_fee")
    def serialize_fee(self, fee: Decimal) -> str:
        return f"{fee:.2f}"


class WarehouseCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    provider: str
    provider_ref: str = Field(..., min_length=1, description="Provider's id for this warehouse/location")
    location: Optional[str] = None


class WarehouseResponse(CamelModel):
    id: UUID
    name: str
    provider: str = Field(..., validation_alias="provider_name")
    provider_ref: str
    location: Optional[str] = None
    active: bool
    created_at: datetime


class StockLineResponse(CamelModel):
    product_id: str
    sku: str
    provider_ref: Optional[str] = None
    quantity: int
    available_quantity: int
    last_synced_at: Optional[datetime] = None
