"""Fulfillment order endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from container import ServiceContainer
from database import get_db
from dependencies import enforce_rate_limit, get_container, get_seller_id
from observability.request_id import get_request_id
from .schemas import FulfillmentOrderCreate, FulfillmentOrderResponse


router = APIRouter(prefix="/v1/fulfillment", tags=["Fulfillment"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/orders", response_model=FulfillmentOrderResponse, status_code=status.HTTP_201_CREATED)
def create_fulfillment_order(
    body: FulfillmentOrderCreate,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Create the order at the provider. Provider failures surface through the error envelope."""
    result = container.orchestrator(db).process_order(seller_id, body.provider, body.to_request())
    return FulfillmentOrderResponse(
        request_id=get_request_id(),
        provider=body.provider,
        order_id=body.order_id,
        provider_order_id=result.provider_order_id,
        status=result.status,
        tracking_number=result.tracking_number,
    )
