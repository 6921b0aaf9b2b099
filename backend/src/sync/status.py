"""Sync state machines.

Schedule flow:
    IDLE -> DUE -> RUNNING -> COMPLETED|FAILED -> IDLE

A due schedule whose lock is held goes back to IDLE (RUNNING -> DUE when the
lock is lost between the check and the run) and is re-evaluated on the next
tick. A failed run with retries left goes straight back to DUE after the
backoff window.

Run flow:
    PENDING -> RUNNING -> COMPLETED|FAILED (terminal, immutable)
"""

from enum import Enum
from errors import StateTransitionError


class ScheduleState(str, Enum):
    IDLE = "idle"
    DUE = "due"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncRunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    ScheduleState.IDLE: [ScheduleState.DUE],
    ScheduleState.DUE: [ScheduleState.RUNNING, ScheduleState.IDLE],
    ScheduleState.RUNNING: [ScheduleState.COMPLETED, ScheduleState.FAILED, ScheduleState.DUE],
    ScheduleState.COMPLETED: [ScheduleState.IDLE],
    ScheduleState.FAILED: [ScheduleState.IDLE, ScheduleState.DUE],
}

RUN_TRANSITIONS = {
    SyncRunStatus.PENDING: [SyncRunStatus.RUNNING, SyncRunStatus.FAILED],
    SyncRunStatus.RUNNING: [SyncRunStatus.COMPLETED, SyncRunStatus.FAILED],
    SyncRunStatus.COMPLETED: [],  # Terminal
    SyncRunStatus.FAILED: [],  # Terminal
}


def validate_transition(current: ScheduleState, new: ScheduleState) -> None:
    """Raise StateTransitionError unless current -> new is allowed."""
    allowed = ALLOWED_TRANSITIONS.get(current, [])
    if new not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current.value} -> {new.value}. "
            f"Allowed transitions from {current.value}: {[s.value for s in allowed]}"
        )


def validate_run_transition(current: SyncRunStatus, new: SyncRunStatus) -> None:
    allowed = RUN_TRANSITIONS.get(current, [])
    if new not in allowed:
        raise StateTransitionError(
            f"Sync run is {current.value} and cannot become {new.value}"
        )
