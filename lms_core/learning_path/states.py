"""
Learning path state machines.

Two machines live here, each an enum carrying its guard predicates plus an
explicit transition table:

CourseProgressState (one row per course inside a path enrollment):

    locked ──> available ──> in_progress ──> completed
                   └──────────────────────────────^
    completed ──> available   (drop-cascade only)

PathEnrollmentState:

    active ──> completed
    active ──> dropped ──> active   (re-enrollment)
    completed ──> active            (drop-cascade only)

Regression edges are kept in separate tables and only reachable through
``allow_regression=True``, which the drop-cascade alone passes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from lms_core.core.exceptions import InvalidStateTransitionError


# =============================================================================
# Course Progress
# =============================================================================


class CourseProgressState(str, Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _COURSE_RANK[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    def can_start(self) -> bool:
        """Learner may open the course."""
        return self is not CourseProgressState.LOCKED

    def blocks_next(self) -> bool:
        """Counts as an unmet prerequisite for later courses."""
        return self is not CourseProgressState.COMPLETED

    def is_completed(self) -> bool:
        return self is CourseProgressState.COMPLETED


_COURSE_RANK = {
    CourseProgressState.LOCKED: 0,
    CourseProgressState.AVAILABLE: 1,
    CourseProgressState.IN_PROGRESS: 2,
    CourseProgressState.COMPLETED: 3,
}

COURSE_PROGRESS_TRANSITIONS: dict[CourseProgressState, frozenset[CourseProgressState]] = {
    CourseProgressState.LOCKED: frozenset({CourseProgressState.AVAILABLE}),
    CourseProgressState.AVAILABLE: frozenset({CourseProgressState.IN_PROGRESS, CourseProgressState.COMPLETED}),
    CourseProgressState.IN_PROGRESS: frozenset({CourseProgressState.COMPLETED}),
    CourseProgressState.COMPLETED: frozenset(),
}

COURSE_PROGRESS_REGRESSIONS: dict[CourseProgressState, frozenset[CourseProgressState]] = {
    CourseProgressState.COMPLETED: frozenset({CourseProgressState.AVAILABLE}),
}


# =============================================================================
# Path Enrollment
# =============================================================================


class PathEnrollmentState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"

    @property
    def label(self) -> str:
        return self.value.title()

    def can_access_content(self) -> bool:
        return self is not PathEnrollmentState.DROPPED

    def can_track_progress(self) -> bool:
        return self is PathEnrollmentState.ACTIVE

    def can_unlock_courses(self) -> bool:
        return self is PathEnrollmentState.ACTIVE


PATH_ENROLLMENT_TRANSITIONS: dict[PathEnrollmentState, frozenset[PathEnrollmentState]] = {
    PathEnrollmentState.ACTIVE: frozenset({PathEnrollmentState.COMPLETED, PathEnrollmentState.DROPPED}),
    PathEnrollmentState.COMPLETED: frozenset(),
    PathEnrollmentState.DROPPED: frozenset({PathEnrollmentState.ACTIVE}),
}

PATH_ENROLLMENT_REGRESSIONS: dict[PathEnrollmentState, frozenset[PathEnrollmentState]] = {
    PathEnrollmentState.COMPLETED: frozenset({PathEnrollmentState.ACTIVE}),
}


# =============================================================================
# Guards
# =============================================================================


def can_transition(
    current: Enum,
    target: Enum,
    *,
    allow_regression: bool = False,
) -> bool:
    if isinstance(current, CourseProgressState):
        forward, backward = COURSE_PROGRESS_TRANSITIONS, COURSE_PROGRESS_REGRESSIONS
    else:
        forward, backward = PATH_ENROLLMENT_TRANSITIONS, PATH_ENROLLMENT_REGRESSIONS

    if target in forward.get(current, ()):
        return True
    return allow_regression and target in backward.get(current, ())


def ensure_transition(
    model_type: str,
    model_id: Any,
    current: Enum,
    target: Enum,
    *,
    allow_regression: bool = False,
    reason: str = "transition not allowed",
) -> None:
    """Raise InvalidStateTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target, allow_regression=allow_regression):
        raise InvalidStateTransitionError(model_type, model_id, current.value, target.value, reason)
