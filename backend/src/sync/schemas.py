"""Pydantic schemas for inventory sync and schedule endpoints."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field

from schemas.base import CamelModel, SuccessEnvelope


class SyncOptionsRequest(CamelModel):
    full_sync: bool = Field(False, description="Fetch every item instead of the mirrored ones")
    force_update: bool = Field(False, description="Rewrite mirror lines even when unchanged")


class SyncRequest(CamelModel):
    providers: list[str] = Field(..., min_length=1, description="Provider names to sync")
    options: SyncOptionsRequest = Field(default_factory=SyncOptionsRequest)


class ProviderSyncResponse(CamelModel):
    provider: str
    status: str = Field(..., description="completed, failed or skipped")
    sync_id: Optional[UUID] = None
    items_synced: int = 0
    items_failed: int = 0
    items_deferred: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    retry_after_seconds: Optional[float] = None


class SyncResponse(SuccessEnvelope):
    sync_count: int
    fail_count: int
    syncs: list[ProviderSyncResponse]
    failures: list[ProviderSyncResponse]


class SyncStatusResponse(SuccessEnvelope):
    sync_id: Optional[UUID] = None
    provider: Optional[str] = None
    status: str = Field(..., description="pending, running, completed, failed or unknown")


class SyncRunResponse(CamelModel):
    id: UUID
    schedule_id: Optional[UUID] = None
    provider: str = Field(..., validation_alias="provider_name")
    request_id: Optional[str] = None
    trigger: str
    status: str
    items_total: int
    items_synced: int
    items_failed: int
    percentage: float
    error_summary: Optional[str] = None
    errors: list[Any] = Field(default_factory=list, validation_alias="errors_json")
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class SyncProgressResponse(SuccessEnvelope):
    run: Optional[SyncRunResponse] = None
    active_runs: list[SyncRunResponse] = Field(default_factory=list)


class FrequencySchema(CamelModel):
    kind: Literal["interval", "cron"]
    value: str = Field(..., min_length=1, description='"1h", "PT30M" or a crontab such as "0 */6 * * *"')


class ScheduleSettingsSchema(CamelModel):
    retry_on_failure: Optional[bool] = None
    max_retries: Optional[int] = Field(None, ge=0, le=10)
    notify_on_completion: Optional[bool] = None
    notify_on_failure: Optional[bool] = None
    skip_weekends: Optional[bool] = None
    full_sync: Optional[bool] = None

    def to_settings(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ScheduleCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    provider: str
    enabled: bool = True
    frequency: FrequencySchema
    timezone: str = "UTC"
    settings: ScheduleSettingsSchema = Field(default_factory=ScheduleSettingsSchema)
    notifications: dict[str, Any] = Field(default_factory=dict)
    filters: dict[str, Any] = Field(default_factory=dict)

    def to_data(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "enabled": self.enabled,
            "frequency": {"kind": self.frequency.kind, "value": self.frequency.value},
            "timezone": self.timezone,
            "settings": self.settings.to_settings(),
            "notifications": self.notifications,
            "filters": self.filters,
        }


class ScheduleUpdateRequest(CamelModel):
    name: Optional[str] = None
    enabled: Optional[bool] = None
    frequency: Optional[FrequencySchema] = None
    timezone: Optional[str] = None
    settings: Optional[ScheduleSettingsSchema] = None
    notifications: Optional[dict[str, Any]] = None
    filters: Optional[dict[str, Any]] = None

    def to_changes(self) -> dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        if self.frequency is not None:
            changes["frequency"] = {"kind": self.frequency.kind, "value": self.frequency.value}
        if self.settings is not None:
            changes["settings"] = self.settings.to_settings()
        return changes


class ScheduleResponse(CamelModel):
    id: UUID
    name: str
    provider: str = Field(..., validation_alias="provider_name")
    enabled: bool
    frequency: FrequencySchema
    timezone: str
    settings: dict[str, Any]
    notifications: dict[str, Any] = Field(default_factory=dict, validation_alias="notifications_json")
    filters: dict[str, Any] = Field(default_factory=dict, validation_alias="filters_json")
    state: str
    retry_count: int
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    next_run_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_schedule(cls, schedule) -> "ScheduleResponse":
        return cls(
            id=schedule.id,
            name=schedule.name,
            provider=schedule.provider_name,
            enabled=schedule.enabled,
            frequency=FrequencySchema(kind=schedule.frequency_kind, value=schedule.frequency_value),
            timezone=schedule.timezone,
            settings=schedule.settings,
            notifications=schedule.notifications_json or {},
            filters=schedule.filters_json or {},
            state=schedule.state,
            retry_count=schedule.retry_count,
            last_run_at=schedule.last_run_at,
            last_run_status=schedule.last_run_status,
            next_run_at=schedule.next_run_at,
            created_at=schedule.created_at,
        )
