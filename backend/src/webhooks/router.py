"""Webhook endpoints.

POST /v1/webhooks/fulfillment is called by providers and is authenticated by
its HMAC signature, not by an API key. Subscription and delivery endpoints are
seller-scoped.
"""

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from container import ServiceContainer
from database import get_db
from dependencies import enforce_rate_limit, get_client_info, get_container, get_seller_id
from observability.request_id import get_request_id
from .schemas import (
    WebhookAcceptedResponse,
    SubscriptionCreateRequest,
    SubscriptionResponse,
    SubscriptionCreatedResponse,
    DeliveryResponse,
)


router = APIRouter(prefix="/v1/webhooks", tags=["Webhooks"])


@router.post("/fulfillment", response_model=WebhookAcceptedResponse)
async def receive_fulfillment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    client_info: dict = Depends(get_client_info),
):
    """Inbound provider webhook.

    401 on a bad signature, 400 on a malformed payload, 200 once stored and
    dispatched. Re-sending the same body returns the stored event.
    """
    raw_body = await request.body()
    result = await run_in_threadpool(container.gateway(db).receive, request.headers, raw_body, client_info)
    return WebhookAcceptedResponse(
        request_id=get_request_id(),
        event_id=result.event.id,
        event_type=result.event.event_type,
        duplicate=result.duplicate,
        deliveries=result.deliveries,
    )


@router.post(
    "/subscriptions",
    response_model=SubscriptionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_rate_limit)],
)
def create_subscription(
    body: SubscriptionCreateRequest,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    subscription = container.dispatcher(db).create_subscription(seller_id, body.event_type, body.url, body.secret)
    return SubscriptionCreatedResponse.model_validate(subscription)


@router.get("/subscriptions", response_model=list[SubscriptionResponse], dependencies=[Depends(enforce_rate_limit)])
def list_subscriptions(
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return [SubscriptionResponse.model_validate(s) for s in container.dispatcher(db).list_subscriptions(seller_id)]


@router.get("/deliveries", response_model=list[DeliveryResponse], dependencies=[Depends(enforce_rate_limit)])
def list_deliveries(
    delivery_status: Optional[Literal["pending", "delivered", "dead_lettered"]] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Deliveries for manual inspection, e.g. ?status=dead_lettered."""
    deliveries = container.dispatcher(db).list_deliveries(seller_id, status=delivery_status, limit=limit)
    return [DeliveryResponse.model_validate(d) for d in deliveries]


@router.post(
    "/deliveries/{delivery_id}/redeliver",
    response_model=DeliveryResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def redeliver(
    delivery_id: UUID,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return DeliveryResponse.model_validate(container.dispatcher(db).redeliver(seller_id, delivery_id))
