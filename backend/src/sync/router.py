"""Inventory sync and schedule endpoints.

All endpoints require an API key and pass through the shared rate limiter.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from container import ServiceContainer
from database import get_db
from dependencies import enforce_rate_limit, get_container, get_seller_id
from fulfillment.orchestrator import SyncOptions
from observability.request_id import get_request_id
from .schemas import (
    SyncRequest,
    SyncResponse,
    ProviderSyncResponse,
    SyncStatusResponse,
    SyncProgressResponse,
    SyncRunResponse,
    ScheduleCreateRequest,
    ScheduleUpdateRequest,
    ScheduleResponse,
)


router = APIRouter(
    prefix="/v1/inventory",
    tags=["Inventory Sync"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.post("/sync", response_model=SyncResponse)
def sync_inventory(
    body: SyncRequest,
    request: Request,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Sync inventory from one or more providers.

    Each provider succeeds or fails independently; the response lists both.
    """
    result = container.orchestrator(db).sync_inventory(
        seller_id,
        body.providers,
        SyncOptions(full_sync=body.options.full_sync, force_update=body.options.force_update),
        request_id=getattr(request.state, "request_id", None),
    )
    return SyncResponse(
        request_id=result.request_id,
        sync_count=result.sync_count,
        fail_count=result.fail_count,
        syncs=[ProviderSyncResponse.model_validate(r) for r in result.syncs],
        failures=[ProviderSyncResponse.model_validate(r) for r in result.failures],
    )


def _parse_sync_id(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


@router.get("/sync", response_model=SyncStatusResponse)
def get_sync_status(
    sync_id: Optional[str] = Query(None, alias="syncId"),
    provider: Optional[str] = Query(None),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Best-effort sync status; "unknown" when nothing is tracked."""
    if provider:
        container.registry.validate([provider])
    run_id = _parse_sync_id(sync_id)
    if sync_id and run_id is None:
        # Ids we never issued cannot be tracked
        return SyncStatusResponse(request_id=get_request_id(), provider=provider, status="unknown")
    sync_status = container.tracker(db).status(seller_id, run_id=run_id, provider=provider)
    return SyncStatusResponse(request_id=get_request_id(), sync_id=run_id, provider=provider, status=sync_status)


@router.get("/sync/progress", response_model=SyncProgressResponse)
def get_sync_progress(
    sync_id: Optional[str] = Query(None, alias="syncId"),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Full progress record for one run plus the seller's active runs."""
    tracker = container.tracker(db)
    run_id = _parse_sync_id(sync_id)
    run = tracker.get_run(run_id, seller_id) if run_id else None
    return SyncProgressResponse(
        request_id=get_request_id(),
        run=SyncRunResponse.model_validate(run) if run else None,
        active_runs=[SyncRunResponse.model_validate(r) for r in tracker.active_runs(seller_id)],
    )


@router.post("/schedule", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    body: ScheduleCreateRequest,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    schedule = container.schedule_manager(db).create(seller_id, body.to_data())
    return ScheduleResponse.from_schedule(schedule)


@router.get("/schedule", response_model=list[ScheduleResponse])
def list_schedules(
    provider: Optional[str] = Query(None),
    enabled: Optional[bool] = Query(None),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    schedules = container.schedule_manager(db).list_schedules(seller_id, provider=provider, enabled=enabled)
    return [ScheduleResponse.from_schedule(s) for s in schedules]


@router.get("/schedule/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(
    schedule_id: UUID,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return ScheduleResponse.from_schedule(container.schedule_manager(db).get(seller_id, schedule_id))


@router.patch("/schedule/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: UUID,
    body: ScheduleUpdateRequest,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Edit or enable/disable a schedule. Schedules are never deleted."""
    schedule = container.schedule_manager(db).update(seller_id, schedule_id, body.to_changes())
    return ScheduleResponse.from_schedule(schedule)


@router.get("/schedule/{schedule_id}/runs", response_model=list[SyncRunResponse])
def list_schedule_runs(
    schedule_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    runs = container.schedule_manager(db).list_runs(seller_id, schedule_id, limit=limit)
    return [SyncRunResponse.model_validate(r) for r in runs]
