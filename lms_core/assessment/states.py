"""
Assessment attempt lifecycle.

    in_progress ──> submitted ──> graded ──> completed
          └──────────────────────────^ (auto-graded, nothing pending)

``graded -> graded`` is allowed so an instructor can re-grade.
"""

from __future__ import annotations

from enum import Enum

from lms_core.core.exceptions import InvalidStateTransitionError


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"
    COMPLETED = "completed"

    @property
    def counts_as_used(self) -> bool:
        """Attempts that count against an assessment's max_attempts."""
        return self is not AttemptStatus.IN_PROGRESS


ATTEMPT_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.IN_PROGRESS: frozenset({AttemptStatus.SUBMITTED, AttemptStatus.GRADED, AttemptStatus.COMPLETED}),
    AttemptStatus.SUBMITTED: frozenset({AttemptStatus.GRADED}),
    AttemptStatus.GRADED: frozenset({AttemptStatus.GRADED, AttemptStatus.COMPLETED}),
    AttemptStatus.COMPLETED: frozenset(),
}


def ensure_attempt_transition(attempt_id: int, current: AttemptStatus, target: AttemptStatus, reason: str) -> None:
    if target not in ATTEMPT_TRANSITIONS[current]:
        raise InvalidStateTransitionError("AssessmentAttempt", attempt_id, current.value, target.value, reason)
