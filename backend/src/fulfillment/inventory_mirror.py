"""Local warehouse_stock mirror of provider inventory.

Sync runs and provider inventory.updated webhooks write provider quantities
into warehouse_stock so transfers check against current stock. Lines are
matched on (warehouse, product), the key warehouse_stock is unique on; the
product id of a mirrored line is the provider SKU.

A line a transfer is moving (its stock lock is held, or a pending or
processing transfer names it as source or target) is deferred: the provider
count already reflects the move the transfer is about to write locally, so
the next sync picks the line up instead.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models import Warehouse, WarehouseStock, WarehouseTransfer
from providers import InventoryItem
from sync.progress import SyncProgressTracker, stock_lock_key
from transfers.status import TransferStatus


logger = logging.getLogger(__name__)


@dataclass
class MirrorResult:
    items_synced: int = 0
    items_failed: int = 0
    items_deferred: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def items_total(self) -> int:
        return self.items_synced + self.items_failed

    def fail(self, item: InventoryItem, error: str) -> None:
        self.items_failed += 1
        self.errors.append({"sku": item.sku, "providerRef": item.provider_ref, "error": error})


def provider_refs_for(db: Session, seller_id: str, provider: str) -> Optional[list[str]]:
    """Provider item ids already mirrored for an incremental sync, None if none are."""
    rows = db.query(WarehouseStock.provider_ref).join(
        Warehouse, Warehouse.id == WarehouseStock.warehouse_id
    ).filter(
        WarehouseStock.seller_id == seller_id,
        Warehouse.provider_name == provider,
        WarehouseStock.provider_ref.isnot(None),
    ).distinct().all()
    refs = sorted(ref for (ref,) in rows)
    return refs or None


def _resolve_warehouse(
    warehouses: list[Warehouse],
    warehouse_ref: Optional[str],
) -> Optional[Warehouse]:
    if warehouse_ref:
        return next((w for w in warehouses if w.provider_ref == warehouse_ref), None)
    # Providers that report a single stock pool map onto the seller's only warehouse
    return warehouses[0] if len(warehouses) == 1 else None


def _lines_in_transfer(db: Session, warehouse_ids: list[Any]) -> set[tuple[Any, str]]:
    """(warehouse id, product id) pairs named by a pending or processing transfer."""
    if not warehouse_ids:
        return set()
    rows = db.query(
        WarehouseTransfer.source_warehouse_id,
        WarehouseTransfer.target_warehouse_id,
        WarehouseTransfer.product_id,
    ).filter(
        WarehouseTransfer.status.in_((TransferStatus.PENDING.value, TransferStatus.PROCESSING.value)),
        or_(
            WarehouseTransfer.source_warehouse_id.in_(warehouse_ids),
            WarehouseTransfer.target_warehouse_id.in_(warehouse_ids),
        ),
    ).all()
    held = set()
    for source_id, target_id, product_id in rows:
        held.add((source_id, product_id))
        held.add((target_id, product_id))
    return held


def apply_inventory(
    db: Session,
    seller_id: str,
    provider: str,
    items: list[InventoryItem],
    now: datetime,
    tracker: SyncProgressTracker,
    force_update: bool = False,
) -> MirrorResult:
    """
    Write provider inventory into warehouse_stock. Does not commit.

    Unchanged lines are left alone unless force_update is set, in which case
    their last_synced_at is refreshed too. A product reported more than once
    for the same warehouse keeps its first row; the repeats count as failed.
    Lines a transfer is moving are skipped and counted as deferred.
    """
    result = MirrorResult()
    warehouses = db.query(Warehouse).filter(
        Warehouse.seller_id == seller_id,
        Warehouse.provider_name == provider,
        Warehouse.active.is_(True),
    ).all()
    in_transfer = _lines_in_transfer(db, [w.id for w in warehouses])
    seen: set[tuple[Any, str]] = set()

    for item in items:
        if not item.sku:
            result.fail(item, "Item has no SKU")
            continue

        warehouse = _resolve_warehouse(warehouses, item.warehouse_ref)
        if warehouse is None:
            result.fail(item, f"No active warehouse mapped for location '{item.warehouse_ref or 'default'}'")
            continue

        key = (warehouse.id, item.sku)
        if key in seen:
            result.fail(item, f"Duplicate entry for {item.sku} at location '{item.warehouse_ref or 'default'}'")
            continue
        seen.add(key)

        if key in in_transfer or tracker.is_locked(stock_lock_key(warehouse.id, item.sku), now):
            result.items_deferred += 1
            continue

        quantity = max(0, int(item.quantity))
        available = max(0, min(int(item.available_quantity), quantity))

        line = db.query(WarehouseStock).filter(
            WarehouseStock.warehouse_id == warehouse.id,
            WarehouseStock.product_id == item.sku,
        ).first()
        if line is None:
            db.add(WarehouseStock(
                seller_id=seller_id,
                warehouse_id=warehouse.id,
                product_id=item.sku,
                sku=item.sku,
                provider_ref=item.provider_ref,
                quantity=quantity,
                available_quantity=available,
                last_synced_at=now,
            ))
        else:
            changed = (
                line.quantity != quantity
                or line.available_quantity != available
                or line.provider_ref != item.provider_ref
            )
            if changed or force_update:
                line.quantity = quantity
                line.available_quantity = available
                line.provider_ref = item.provider_ref
                line.last_synced_at = now
        result.items_synced += 1

    db.flush()
    if result.items_failed:
        logger.warning(
            f"{result.items_failed} inventory item(s) not mirrored",
            extra={"seller_id": seller_id, "provider": provider},
        )
    if result.items_deferred:
        logger.info(
            f"{result.items_deferred} inventory item(s) deferred while a transfer holds them",
            extra={"seller_id": seller_id, "provider": provider},
        )
    return result
