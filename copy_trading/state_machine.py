"""
Copy Trading - State Machine.

============================================================
PURPOSE
============================================================
Stages of one copy event and the CopyAttempt lifecycle.

EVENT STAGES:

    GATING ──► ENUMERATING ──► PER_FOLLOWER ──► SUMMARIZING ──► DONE
       │            │
       └────────────┴──────────────────────────────────────────► DONE

    PER_FOLLOWER (isolated, one per follower):
    ALLOCATING ──► RISK_ADJUSTING ──► SUBMITTING ──► RECORDING

COPY ATTEMPT:

    PENDING ──► SUCCESS
       │
       └──────► FAILED

INVARIANTS:
- Terminal statuses are final
- A CopyAttempt is updated exactly once

============================================================
"""

import logging
from enum import Enum
from typing import Dict, Set

from .types import CopyAttemptStatus, InvariantViolation


logger = logging.getLogger(__name__)


class CopyEventStage(Enum):
    """Stage of a copy event, used in log lines."""

    GATING = "gating"
    ENUMERATING = "enumerating"
    ALLOCATING = "allocating"
    RISK_ADJUSTING = "risk_adjusting"
    SUBMITTING = "submitting"
    RECORDING = "recording"
    SUMMARIZING = "summarizing"
    DONE = "done"


VALID_ATTEMPT_TRANSITIONS: Dict[CopyAttemptStatus, Set[CopyAttemptStatus]] = {
    CopyAttemptStatus.PENDING: {
        CopyAttemptStatus.SUCCESS,
        CopyAttemptStatus.FAILED,
    },
    CopyAttemptStatus.SUCCESS: set(),
    CopyAttemptStatus.FAILED: set(),
}


def can_transition(
    from_status: CopyAttemptStatus,
    to_status: CopyAttemptStatus,
) -> bool:
    """Check if a CopyAttempt status transition is allowed."""
    return to_status in VALID_ATTEMPT_TRANSITIONS.get(from_status, set())


def validate_attempt_transition(
    attempt_id: int,
    from_status: CopyAttemptStatus,
    to_status: CopyAttemptStatus,
) -> None:
    """
    Guard a CopyAttempt status change.

    Raises:
        InvariantViolation: If the transition is not allowed
    """
    if not can_transition(from_status, to_status):
        logger.error(
            f"Rejected copy attempt transition {attempt_id}: "
            f"{from_status.value} -> {to_status.value}"
        )
        raise InvariantViolation(
            f"Copy attempt {attempt_id} cannot move from "
            f"{from_status.value} to {to_status.value}"
        )
