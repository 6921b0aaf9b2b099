"""Warehouse transfer and warehouse registry endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from container import ServiceContainer
from database import get_db
from dependencies import enforce_rate_limit, get_container, get_seller_id
from errors import NotFound, ValidationFailed
from models import Warehouse, WarehouseStock
from .schemas import (
    TransferRequest,
    TransferResponse,
    WarehouseCreateRequest,
    WarehouseResponse,
    StockLineResponse,
)


router = APIRouter(prefix="/warehouse", tags=["Warehouse Transfers"], dependencies=[Depends(enforce_rate_limit)])
warehouses_router = APIRouter(prefix="/v1/warehouses", tags=["Warehouses"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/transfer", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
def create_transfer(
    body: TransferRequest,
    request: Request,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Move stock between two of the seller's warehouses, now or at scheduledAt.

    A provider failure is not an HTTP error: the transfer is returned with
    status "failed" and errorMessage set.
    """
    transfer = container.transfer_service(db).create_transfer(
        seller_id=seller_id,
        product_id=body.product_id,
        source_warehouse_id=body.source_warehouse_id,
        target_warehouse_id=body.target_warehouse_id,
        quantity=body.quantity,
        scheduled_at=body.scheduled_at,
        request_id=getattr(request.state, "request_id", None),
    )
    return TransferResponse.model_validate(transfer)


@router.get("/transfer/{transfer_id}", response_model=TransferResponse)
def get_transfer(
    transfer_id: UUID,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return TransferResponse.model_validate(container.transfer_service(db).get(seller_id, transfer_id))


@router.post("/transfer/{transfer_id}/cancel", response_model=TransferResponse)
def cancel_transfer(
    transfer_id: UUID,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Cancel a transfer that is still scheduled."""
    return TransferResponse.model_validate(container.transfer_service(db).cancel(seller_id, transfer_id))


@router.get("/transfers", response_model=list[TransferResponse])
def list_transfers(
    transfer_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    transfers = container.transfer_service(db).list_transfers(seller_id, status=transfer_status, limit=limit)
    return [TransferResponse.model_validate(t) for t in transfers]


@warehouses_router.post("", response_model=WarehouseResponse, status_code=status.HTTP_201_CREATED)
def register_warehouse(
    body: WarehouseCreateRequest,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Register a provider warehouse/location so syncs and transfers can address it."""
    container.registry.validate([body.provider])
    warehouse = Warehouse(
        seller_id=seller_id,
        provider_name=body.provider,
        provider_ref=body.provider_ref,
        name=body.name,
        location=body.location,
        active=True,
    )
    db.add(warehouse)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed(f"Warehouse {body.provider_ref} is already registered for {body.provider}")
    return WarehouseResponse.model_validate(warehouse)


@warehouses_router.get("", response_model=list[WarehouseResponse])
def list_warehouses(
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
):
    warehouses = db.query(Warehouse).filter(Warehouse.seller_id == seller_id).order_by(Warehouse.created_at).all()
    return [WarehouseResponse.model_validate(w) for w in warehouses]


@warehouses_router.get("/{warehouse_id}/stock", response_model=list[StockLineResponse])
def list_warehouse_stock(
    warehouse_id: UUID,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
):
    warehouse = db.query(Warehouse).filter(Warehouse.id == warehouse_id, Warehouse.seller_id == seller_id).first()
    if warehouse is None:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    lines = db.query(WarehouseStock).filter(WarehouseStock.warehouse_id == warehouse.id).order_by(WarehouseStock.sku).all()
    return [StockLineResponse.model_validate(line) for line in lines]
