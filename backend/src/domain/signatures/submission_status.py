"""SubmissionStatus state machine for e-signature requests"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class SubmissionStatus(str, Enum):
    """E-signature submission status enum

    State flow:
    PENDING → SENT → OPENED → COMPLETED
    SENT/OPENED → EXPIRED (deadline passed or explicit expire)
    SENT/OPENED/EXPIRED → SENT (resend)
    PENDING/SENT/OPENED → DECLINED
    """
    PENDING = "pending"        # Created, invitations not delivered yet
    SENT = "sent"              # Invitations delivered
    OPENED = "opened"          # A recipient viewed the form
    COMPLETED = "completed"    # All fields submitted (terminal)
    EXPIRED = "expired"        # Deadline passed (only resend leaves it)
    DECLINED = "declined"      # Recipient refused to sign (terminal)


class SubmissionEvent(str, Enum):
    """Event names delivered to registered callbacks"""
    SENT = "sent"
    OPENED = "opened"
    COMPLETED = "completed"
    EXPIRED = "expired"
    DECLINED = "declined"


# State transition rules
ALLOWED_TRANSITIONS: Dict[Optional[SubmissionStatus], List[SubmissionStatus]] = {
    None: [SubmissionStatus.PENDING],
    SubmissionStatus.PENDING: [SubmissionStatus.SENT, SubmissionStatus.DECLINED],
    SubmissionStatus.SENT: [
        SubmissionStatus.OPENED,
        SubmissionStatus.COMPLETED,
        SubmissionStatus.EXPIRED,
        SubmissionStatus.SENT,  # resend
        SubmissionStatus.DECLINED,
    ],
    SubmissionStatus.OPENED: [
        SubmissionStatus.COMPLETED,
        SubmissionStatus.EXPIRED,
        SubmissionStatus.SENT,  # resend
        SubmissionStatus.DECLINED,
    ],
    SubmissionStatus.EXPIRED: [SubmissionStatus.SENT],  # resend only
    SubmissionStatus.COMPLETED: [],  # Terminal
    SubmissionStatus.DECLINED: [],  # Terminal
}

TERMINAL_STATUSES: FrozenSet[SubmissionStatus] = frozenset({
    SubmissionStatus.COMPLETED,
    SubmissionStatus.DECLINED,
})

STATUS_FOR_EVENT: Dict[SubmissionEvent, SubmissionStatus] = {
    SubmissionEvent.SENT: SubmissionStatus.SENT,
    SubmissionEvent.OPENED: SubmissionStatus.OPENED,
    SubmissionEvent.COMPLETED: SubmissionStatus.COMPLETED,
    SubmissionEvent.EXPIRED: SubmissionStatus.EXPIRED,
    SubmissionEvent.DECLINED: SubmissionStatus.DECLINED,
}


def can_transition(from_status: Optional[SubmissionStatus], to_status: SubmissionStatus) -> bool:
    """Validate if status transition is allowed

    Example:
        >>> can_transition(SubmissionStatus.SENT, SubmissionStatus.OPENED)
        True
        >>> can_transition(SubmissionStatus.PENDING, SubmissionStatus.COMPLETED)
        False
    """
    allowed = ALLOWED_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def is_terminal(status: SubmissionStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_legal_path(statuses: List[SubmissionStatus]) -> bool:
    """Check that an observed status history is a walk through the graph

    The first element must be reachable from a new submission.

    Example:
        >>> is_legal_path([SubmissionStatus.PENDING, SubmissionStatus.SENT])
        True
    """
    previous: Optional[SubmissionStatus] = None
    for status in statuses:
        if not can_transition(previous, status):
            return False
        previous = status
    return True
