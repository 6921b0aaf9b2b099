"""WarehouseTransfer status state machine.

State Flow:
    PENDING -> PROCESSING -> COMPLETED|FAILED
    SCHEDULED -> PROCESSING|CANCELLED|FAILED

Terminal States: COMPLETED, FAILED, CANCELLED
"""

from enum import Enum
from errors import StateTransitionError


class TransferStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    TransferStatus.PENDING: [TransferStatus.PROCESSING, TransferStatus.FAILED],
    TransferStatus.SCHEDULED: [
        TransferStatus.PROCESSING,
        TransferStatus.CANCELLED,
        TransferStatus.FAILED,
    ],
    TransferStatus.PROCESSING: [TransferStatus.COMPLETED, TransferStatus.FAILED],
    TransferStatus.COMPLETED: [],  # Terminal state
    TransferStatus.FAILED: [],  # Terminal state
    TransferStatus.CANCELLED: [],  # Terminal state
}


def validate_transition(current_status: TransferStatus, new_status: TransferStatus) -> None:
    """Validate that a transfer status transition is allowed.

    Raises:
        StateTransitionError: If transition is not allowed
    """
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )

