"""WarehouseTransfer model - warehouse-to-warehouse stock moves"""

import uuid
from decimal import Decimal

from sqlalchemy import Column, Text, Integer, Numeric, Uuid, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, validates

from .base import Base, UTCDateTime, utcnow


class WarehouseTransfer(Base):
    """
    Warehouse Transfer - saga record for a two-warehouse stock move.

    Status flow: pending -> processing -> completed|failed, or
    scheduled -> processing|cancelled. Stock is only debited and credited
    after the provider confirms the move, so a failed row never corresponds
    to a partial mutation.
    """
    __tablename__ = "warehouse_transfer"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    product_id = Column(Text, nullable=False)
    sku = Column(Text, nullable=True)
    source_warehouse_id = Column(Uuid, ForeignKey("warehouse.id", ondelete="RESTRICT"), nullable=False)
    target_warehouse_id = Column(Uuid, ForeignKey("warehouse.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)
    transfer_fee = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    status = Column(Text, nullable=False, default="pending")
    provider_transaction_id = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    request_id = Column(Text, nullable=True)
    scheduled_at = Column(UTCDateTime, nullable=True)
    processing_started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    source_warehouse = relationship("Warehouse", foreign_keys=[source_warehouse_id])
    target_warehouse = relationship("Warehouse", foreign_keys=[target_warehouse_id])

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_warehouse_transfer_quantity"),
        CheckConstraint(
            "status IN ('pending', 'scheduled', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_warehouse_transfer_status"
        ),
        Index("idx_warehouse_transfer_seller", "seller_id", "created_at"),
        Index("idx_warehouse_transfer_due", "status", "scheduled_at"),
    )

    @validates("quantity")
    def validate_quantity(self, key, value):
        """Ensure quantity is positive."""
        if value is None or value <= 0:
            raise ValueError("quantity must be greater than zero")
        return value

    def __repr__(self):
        return (
            f"<WarehouseTransfer(id={self.id}, product_id='{self.product_id}', quantity={self.quantity}, "
            f"status='{self.status}')>"
        )
