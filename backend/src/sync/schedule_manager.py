"""
Sync Schedule Manager - recurring inventory syncs

One logical ticker per deployment (Celery beat -> sync.tick) evaluates which
enabled schedules are due and runs them through the FulfillmentOrchestrator.

State per schedule:
    IDLE -> DUE -> RUNNING -> COMPLETED | FAILED
A due schedule whose (seller, provider) lock is held is skipped and stays due
for the next tick; nothing is queued. A failed run with retries left becomes
due again after the shared backoff window instead of at its normal cadence.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from audit import log_audit_event
from fulfillment.orchestrator import SyncOptions
from errors import ScheduleNotFound, ValidationFailed, RateLimited
from models import SyncSchedule, SyncRun, utcnow
from notifications import NotificationRequest, NotificationSender, send_safely
from observability.metrics import schedule_ticks_total
from .backoff import BackoffPolicy
from .frequency import Frequency, is_weekend, resolve_timezone
from .status import ScheduleState, validate_transition


logger = logging.getLogger(__name__)


DEFAULT_SETTINGS = {
    "retryOnFailure": True,
    "maxRetries": 3,
    "notifyOnCompletion": False,
    "notifyOnFailure": True,
    "skipWeekends": False,
    "fullSync": False,
}

MAX_RETRIES_LIMIT = 10

# Failures that need the seller to act; retrying cannot help
NON_RETRYABLE_CODES = {"provider_auth_error", "credential_not_found", "vault_error"}


@dataclass
class TickSummary:
    evaluated: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: str) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        schedule_ticks_total.labels(outcome=outcome).inc()


def normalize_settings(settings: Optional[dict[str, Any]], base: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    merged = {**DEFAULT_SETTINGS, **(base or {}), **(settings or {})}
    unknown = set(merged) - set(DEFAULT_SETTINGS)
    if unknown:
        raise ValidationFailed(f"Unknown schedule settings: {sorted(unknown)}")
    try:
        merged["maxRetries"] = int(merged["maxRetries"])
    except (TypeError, ValueError):
        raise ValidationFailed("settings.maxRetries must be an integer")
    if not 0 <= merged["maxRetries"] <= MAX_RETRIES_LIMIT:
        raise ValidationFailed(f"settings.maxRetries must be between 0 and {MAX_RETRIES_LIMIT}")
    for key in DEFAULT_SETTINGS:
        if key != "maxRetries":
            merged[key] = bool(merged[key])
    return merged


class SyncScheduleManager:
    """
    CRUD for sync schedules plus the tick that runs due ones.

    Usage:
        manager = container.schedule_manager(db)
        schedule = manager.create("seller-1", {
            "name": "Hourly ShipBob",
            "provider": "shipbob",
            "frequency": {"kind": "interval", "value": "1h"},
        })
        manager.tick()
    """

    def __init__(
        self,
        db: Session,
        orchestrator,
        backoff: BackoffPolicy,
        notifier: Optional[NotificationSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.backoff = backoff
        self.notifier = notifier
        self.clock = clock

    # ------------------------------------------------------------------
    # Schedule management
    # ------------------------------------------------------------------

    def create(self, seller_id: str, data: dict[str, Any]) -> SyncSchedule:
        """
        Create a schedule. next_run_at is one cadence after creation.

        Raises:
            ValidationFailed, UnknownProvider, InvalidFrequency
        """
        now = self.clock()
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationFailed("Schedule name is required")

        provider = data.get("provider")
        if not provider:
            raise ValidationFailed("Schedule provider is required")
        self.orchestrator.registry.validate([provider])

        timezone = data.get("timezone") or "UTC"
        resolve_timezone(timezone)
        frequency_data = data.get("frequency") or {}
        frequency = Frequency.parse(frequency_data.get("kind"), frequency_data.get("value") or "", timezone)

        schedule = SyncSchedule(
            seller_id=seller_id,
            name=name,
            provider_name=provider,
            enabled=bool(data.get("enabled", True)),
            frequency_kind=frequency.kind,
            frequency_value=frequency.value,
            timezone=timezone,
            settings_json=normalize_settings(data.get("settings")),
            notifications_json=data.get("notifications") or {},
            filters_json=data.get("filters") or {},
            state=ScheduleState.IDLE.value,
            retry_count=0,
            created_at=now,
            next_run_at=frequency.next_run_after(now, timezone),
        )
        self.db.add(schedule)
        self.db.flush()
        log_audit_event(
            self.db,
            action="schedule.created",
            seller_id=seller_id,
            entity_type="sync_schedule",
            entity_id=schedule.id,
            metadata={"provider": provider, "frequency": {"kind": frequency.kind, "value": frequency.value}},
        )
        self.db.commit()

        logger.info(
            f"Schedule '{name}' created, next run at {schedule.next_run_at.isoformat()}",
            extra={"seller_id": seller_id, "provider": provider, "schedule_id": str(schedule.id)},
        )
        return schedule

    def update(self, seller_id: str, schedule_id: UUID, changes: dict[str, Any]) -> SyncSchedule:
        """
        Edit a schedule (partial). Schedules are never deleted; set enabled=False.

        Changing frequency or timezone, or re-enabling, recomputes next_run_at.
        """
        schedule = self.get(seller_id, schedule_id)
        recompute = False

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationFailed("Schedule name cannot be empty")
            schedule.name = name

        if "enabled" in changes and changes["enabled"] is not None:
            enabled = bool(changes["enabled"])
            recompute = recompute or (enabled and not schedule.enabled)
            schedule.enabled = enabled

        timezone = changes.get("timezone") or schedule.timezone
        frequency_data = changes.get("frequency")
        if frequency_data or timezone != schedule.timezone:
            kind = (frequency_data or {}).get("kind", schedule.frequency_kind)
            value = (frequency_data or {}).get("value", schedule.frequency_value)
            frequency = Frequency.parse(kind, value, timezone)
            schedule.frequency_kind = frequency.kind
            schedule.frequency_value = frequency.value
            schedule.timezone = timezone
            recompute = True

        if "settings" in changes and changes["settings"] is not None:
            schedule.settings_json = normalize_settings(changes["settings"], base=schedule.settings)
        if "notifications" in changes and changes["notifications"] is not None:
            schedule.notifications_json = changes["notifications"]
        if "filters" in changes and changes["filters"] is not None:
            schedule.filters_json = changes["filters"]

        if recompute:
            anchor = schedule.last_run_at or self.clock()
            schedule.next_run_at = self._frequency(schedule).next_run_after(anchor, schedule.timezone)
            schedule.retry_count = 0

        log_audit_event(
            self.db,
            action="schedule.updated",
            seller_id=seller_id,
            entity_type="sync_schedule",
            entity_id=schedule.id,
            metadata={"fields": sorted(k for k, v in changes.items() if v is not None)},
        )
        self.db.commit()
        return schedule

    def get(self, seller_id: str, schedule_id: UUID) -> SyncSchedule:
        schedule = self.db.query(SyncSchedule).filter(
            SyncSchedule.id == schedule_id,
            SyncSchedule.seller_id == seller_id,
        ).first()
        if schedule is None:
            raise ScheduleNotFound(f"Schedule {schedule_id} not found")
        return schedule

    def list_schedules(self, seller_id: str, provider: Optional[str] = None, enabled: Optional[bool] = None) -> list[SyncSchedule]:
        query = self.db.query(SyncSchedule).filter(SyncSchedule.seller_id == seller_id)
        if provider:
            query = query.filter(SyncSchedule.provider_name == provider)
        if enabled is not None:
            query = query.filter(SyncSchedule.enabled.is_(enabled))
        return query.order_by(SyncSchedule.created_at.desc()).all()

    def list_runs(self, seller_id: str, schedule_id: UUID, limit: int = 50) -> list[SyncRun]:
        schedule = self.get(seller_id, schedule_id)
        return self.db.query(SyncRun).filter(
            SyncRun.schedule_id == schedule.id,
        ).order_by(SyncRun.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Ticker
    # ------------------------------------------------------------------

    def due_schedules(self, now: datetime) -> list[SyncSchedule]:
        return self.db.query(SyncSchedule).filter(
            SyncSchedule.enabled.is_(True),
            SyncSchedule.next_run_at <= now,
        ).order_by(SyncSchedule.next_run_at).all()

    def tick(self, now: Optional[datetime] = None) -> TickSummary:
        """Evaluate every enabled schedule once and run the due ones."""
        now = now or self.clock()
        summary = TickSummary()
        for schedule in self.due_schedules(now):
            summary.evaluated += 1
            try:
                outcome = self.run_schedule(schedule, now)
            except Exception:
                # One broken schedule must not stop the rest of the tick
                self.db.rollback()
                logger.exception(
                    "Schedule evaluation failed",
                    extra={"schedule_id": str(schedule.id), "seller_id": schedule.seller_id},
                )
                outcome = "error"
            summary.record(outcome)
        return summary

    def run_schedule(self, schedule: SyncSchedule, now: datetime) -> str:
        """
        Run one due schedule.

        Returns:
            Outcome: completed | failed | retry_scheduled | skipped_locked | skipped_weekend
        """
        self._enter_due(schedule, now)
        tracker = self.orchestrator.tracker

        if schedule.settings.get("skipWeekends") and is_weekend(now, schedule.timezone):
            self._transition(schedule, ScheduleState.IDLE)
            schedule.next_run_at = self._frequency(schedule).next_run_after(now, schedule.timezone)
            self.db.commit()
            return "skipped_weekend"

        if tracker.is_sync_running(schedule.seller_id, schedule.provider_name, now):
            self._transition(schedule, ScheduleState.IDLE)
            self.db.commit()
            logger.info(
                "Schedule due but a sync is running, retrying next tick",
                extra={"schedule_id": str(schedule.id), "provider": schedule.provider_name},
            )
            return "skipped_locked"

        self._transition(schedule, ScheduleState.RUNNING)
        self.db.commit()

        result = self.orchestrator.sync_inventory(
            schedule.seller_id,
            [schedule.provider_name],
            SyncOptions(full_sync=schedule.settings.get("fullSync", False)),
            schedule_id=schedule.id,
            trigger="schedule",
        )
        provider_result = result.results[0]

        if provider_result.status == "skipped":
            self._transition(schedule, ScheduleState.DUE)
            self.db.commit()
            return "skipped_locked"

        schedule.last_run_at = now
        schedule.last_run_status = provider_result.status
        if provider_result.succeeded:
            return self._on_completed(schedule, provider_result, now)
        return self._on_failed(schedule, provider_result, now)

    def _on_completed(self, schedule: SyncSchedule, result, now: datetime) -> str:
        self._transition(schedule, ScheduleState.COMPLETED)
        schedule.retry_count = 0
        schedule.next_run_at = self._frequency(schedule).next_run_after(now, schedule.timezone)
        self.db.commit()

        if schedule.settings.get("notifyOnCompletion"):
            self._notify(
                schedule,
                "sync_completed",
                f"Scheduled sync '{schedule.name}' completed",
                f"{result.items_synced} item(s) synced, {result.items_failed} failed.",
                result,
            )
        return "completed"

    def _on_failed(self, schedule: SyncSchedule, result, now: datetime) -> str:
        self._transition(schedule, ScheduleState.FAILED)
        settings = schedule.settings
        retryable = settings.get("retryOnFailure") and result.error_code not in NON_RETRYABLE_CODES
        outcome = "failed"

        if retryable and schedule.retry_count < settings.get("maxRetries", 0):
            schedule.retry_count += 1
            hint = None
            if result.retry_after_seconds is not None:
                hint = RateLimited(provider=schedule.provider_name, retry_after_seconds=result.retry_after_seconds)
            self._transition(schedule, ScheduleState.DUE)
            schedule.next_run_at = self.backoff.next_attempt_at(now, schedule.retry_count, hint)
            outcome = "retry_scheduled"
        else:
            schedule.retry_count = 0
            schedule.next_run_at = self._frequency(schedule).next_run_after(now, schedule.timezone)
        self.db.commit()

        logger.warning(
            f"Scheduled sync failed ({outcome}): {result.error}",
            extra={
                "schedule_id": str(schedule.id),
                "seller_id": schedule.seller_id,
                "provider": schedule.provider_name,
                "error_code": result.error_code,
            },
        )
        if settings.get("notifyOnFailure"):
            self._notify(
                schedule,
                "sync_failed",
                f"Scheduled sync '{schedule.name}' failed",
                result.error or "Sync failed",
                result,
            )
        return outcome

    def _enter_due(self, schedule: SyncSchedule, now: datetime) -> None:
        state = ScheduleState(schedule.state)
        if state == ScheduleState.DUE:
            return
        if state == ScheduleState.RUNNING:
            # Left running by a crashed ticker; the run itself is failed by the stale-run sweep
            self._transition(schedule, ScheduleState.FAILED)
            state = ScheduleState.FAILED
        if state == ScheduleState.COMPLETED:
            self._transition(schedule, ScheduleState.IDLE)
        self._transition(schedule, ScheduleState.DUE)

    def _transition(self, schedule: SyncSchedule, new_state: ScheduleState) -> None:
        validate_transition(ScheduleState(schedule.state), new_state)
        schedule.state = new_state.value

    def _frequency(self, schedule: SyncSchedule) -> Frequency:
        return Frequency(kind=schedule.frequency_kind, value=schedule.frequency_value)

    def _notify(self, schedule: SyncSchedule, kind: str, title: str, message: str, result) -> None:
        send_safely(self.notifier, NotificationRequest(
            user_id=schedule.seller_id,
            type=kind,
            title=title,
            message=message,
            data={
                "scheduleId": str(schedule.id),
                "provider": schedule.provider_name,
                "syncId": str(result.sync_id) if result.sync_id else None,
                "recipients": schedule.notifications_json or {},
            },
        ))
