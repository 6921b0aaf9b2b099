"""Inventory sync engine: run tracking, locks, schedules and the shared backoff policy."""

from .backoff import BackoffPolicy
from .frequency import Frequency, parse_interval, is_weekend
from .status import ScheduleState, SyncRunStatus
from .progress import SyncProgressTracker, sync_lock_key, stock_lock_key

__all__ = [
    "BackoffPolicy",
    "Frequency",
    "parse_interval",
    "is_weekend",
    "ScheduleState",
    "SyncRunStatus",
    "SyncProgressTracker",
    "sync_lock_key",
    "stock_lock_key",
]
