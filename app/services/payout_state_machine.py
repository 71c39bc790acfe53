"""
Payout State Machine

Every payout status change goes through this module.

    SUBMITTED -> IN_PROGRESS -> APPROVED -> PAID
        \\             \\
         +-> APPROVED   +-> REJECTED
         +-> REJECTED

PAID and REJECTED are terminal. Transitions only move forward.
"""

from datetime import datetime, timezone
from typing import List, Dict, Optional

from app.core.exceptions import ValidationError
from app.models.commission import PayoutStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
PAYOUT_TRANSITIONS: Dict[str, List[str]] = {
    PayoutStatus.SUBMITTED.value: [
        PayoutStatus.IN_PROGRESS.value,   # Picked up by back office
        PayoutStatus.APPROVED.value,      # Direct approve
        PayoutStatus.REJECTED.value,
    ],
    PayoutStatus.IN_PROGRESS.value: [
        PayoutStatus.APPROVED.value,
        PayoutStatus.REJECTED.value,
    ],
    PayoutStatus.APPROVED.value: [
        PayoutStatus.PAID.value,          # Money transferred
    ],
    PayoutStatus.PAID.value: [],          # Terminal
    PayoutStatus.REJECTED.value: [],      # Terminal
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (PayoutStatus.SUBMITTED.value, PayoutStatus.IN_PROGRESS.value): "Start Processing",
    (PayoutStatus.SUBMITTED.value, PayoutStatus.APPROVED.value): "Direct Approve",
    (PayoutStatus.SUBMITTED.value, PayoutStatus.REJECTED.value): "Reject",
    (PayoutStatus.IN_PROGRESS.value, PayoutStatus.APPROVED.value): "Approve",
    (PayoutStatus.IN_PROGRESS.value, PayoutStatus.REJECTED.value): "Reject",
    (PayoutStatus.APPROVED.value, PayoutStatus.PAID.value): "Mark Paid",
}

# Entering one of these stamps processed_at
PROCESSED_STATUSES = (
    PayoutStatus.APPROVED.value,
    PayoutStatus.PAID.value,
    PayoutStatus.REJECTED.value,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in PAYOUT_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return list(PAYOUT_TRANSITIONS.get(current_status, []))


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    return not PAYOUT_TRANSITIONS.get(status)


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises ValidationError if invalid.

    Staying in the same status is always allowed (notes-only update).
    """
    if current_status == new_status:
        return

    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            raise ValidationError(
                f"Payout in '{current_status}' status cannot be modified. This is a terminal state.",
                {"current_status": current_status, "requested_status": new_status},
            )
        raise ValidationError(
            f"Cannot change payout from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            {"current_status": current_status, "requested_status": new_status, "allowed": allowed},
        )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_payout(payout, new_status: str, user_id=None, notes: Optional[str] = None) -> None:
    """
    Move a payout to a new status and set the audit fields.

    processed_at is stamped when entering APPROVED, PAID or REJECTED and
    cleared for IN_PROGRESS.
    """
    current_status = payout.status
    validate_transition(current_status, new_status)

    if notes is not None:
        payout.notes = notes

    if current_status == new_status:
        return

    payout.status = new_status

    if new_status in PROCESSED_STATUSES:
        payout.processed_at = datetime.now(timezone.utc)
        payout.processed_by = user_id
    elif new_status == PayoutStatus.IN_PROGRESS.value:
        payout.processed_at = None
