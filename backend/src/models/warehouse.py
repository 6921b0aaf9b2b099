"""Warehouse and WarehouseStock models - seller warehouses and the local stock mirror"""

import uuid

from sqlalchemy import (
    Column, Text, Boolean, Integer, Uuid, ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship, validates

from .base import Base, UTCDateTime, utcnow


class Warehouse(Base):
    """A provider-operated warehouse a seller stocks inventory in.

    provider_ref is the provider's own identifier for the location (ShipBob
    fulfillment center id, 4PX warehouse code) and is what transfer calls send.
    """
    __tablename__ = "warehouse"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    provider_name = Column(Text, nullable=False)
    provider_ref = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    location = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    stock = relationship("WarehouseStock", back_populates="warehouse", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("seller_id", "provider_name", "provider_ref", name="uq_warehouse_provider_ref"),
        Index("idx_warehouse_seller", "seller_id", "active"),
    )

    def __repr__(self):
        return f"<Warehouse(id={self.id}, provider='{self.provider_name}', ref='{self.provider_ref}')>"


class WarehouseStock(Base):
    """Stock line for one product in one warehouse.

    Written by inventory syncs (matched on provider + sku), by inventory.updated
    webhooks and by completed transfers. Transfers check and mutate it while
    holding the stock lock for (warehouse_id, product_id).
    """
    __tablename__ = "warehouse_stock"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Text, nullable=False)
    warehouse_id = Column(Uuid, ForeignKey("warehouse.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Text, nullable=False, comment="Seller catalog product id (external)")
    sku = Column(Text, nullable=False)
    provider_ref = Column(Text, nullable=True, comment="Provider inventory item id")
    quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    last_synced_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    warehouse = relationship("Warehouse", back_populates="stock")

    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_warehouse_stock_product"),
        CheckConstraint("quantity >= 0", name="ck_warehouse_stock_quantity"),
        CheckConstraint("available_quantity >= 0", name="ck_warehouse_stock_available"),
        Index("idx_warehouse_stock_sku", "seller_id", "sku"),
    )

    @validates("quantity", "available_quantity")
    def validate_quantity(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} must be non-negative")
        return value

    def __repr__(self):
        return (
            f"<WarehouseStock(warehouse_id={self.warehouse_id}, product_id='{self.product_id}', "
            f"quantity={self.quantity}, available={self.available_quantity})>"
        )
