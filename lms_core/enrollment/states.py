"""
Course-level enrollment lifecycle.

    active ──> completed ──> dropped
      │                        │
      └────────> dropped <─────┘ (reactivation: dropped ──> active)

Dropping a completed course enrollment is allowed: it is the trigger for the
learning-path drop-cascade.
"""

from __future__ import annotations

from enum import Enum

from lms_core.core.exceptions import InvalidStateTransitionError


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"

    @property
    def can_track_progress(self) -> bool:
        return self is not EnrollmentStatus.DROPPED

    @property
    def is_current(self) -> bool:
        """Active or completed - counts as 'enrolled'."""
        return self in (EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED)


ENROLLMENT_TRANSITIONS: dict[EnrollmentStatus, frozenset[EnrollmentStatus]] = {
    EnrollmentStatus.ACTIVE: frozenset({EnrollmentStatus.COMPLETED, EnrollmentStatus.DROPPED}),
    EnrollmentStatus.COMPLETED: frozenset({EnrollmentStatus.DROPPED}),
    EnrollmentStatus.DROPPED: frozenset({EnrollmentStatus.ACTIVE}),
}


def ensure_enrollment_transition(enrollment_id: int, current: EnrollmentStatus, target: EnrollmentStatus) -> None:
    if target not in ENROLLMENT_TRANSITIONS[current]:
        raise InvalidStateTransitionError("Enrollment", enrollment_id, current.value, target.value)
