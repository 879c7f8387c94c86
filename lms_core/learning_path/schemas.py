"""Result types returned by the learning path services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .states import CourseProgressState

if TYPE_CHECKING:
    from lms_core.db.models import LearningPathEnrollment


@dataclass
class PathEnrollmentResult:
    enrollment: LearningPathEnrollment
    is_new_enrollment: bool
    total_courses: int
    unlocked_courses: int

    @property
    def message(self) -> str:
        if self.is_new_enrollment:
            return f"Enrolled with {self.unlocked_courses}/{self.total_courses} courses available"
        return "Enrollment reactivated"


@dataclass
class CourseProgressItem:
    course_id: int
    title: str
    state: CourseProgressState
    position: int
    is_required: bool
    completion_percentage: float = 0.0
    min_required_percentage: float | None = None
    prerequisites: dict[str, Any] | None = None
    lock_reason: str | None = None
    unlocked_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_accessible(self) -> bool:
        return self.state.can_start()

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "title": self.title,
            "status": self.state.value,
            "position": self.position,
            "is_required": self.is_required,
            "completion_percentage": self.completion_percentage,
            "min_required_percentage": self.min_required_percentage,
            "prerequisites": self.prerequisites,
            "lock_reason": self.lock_reason,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class PathProgressResult:
    path_enrollment_id: int
    overall_percentage: float
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    locked_courses: int
    available_courses: int
    courses: list[CourseProgressItem] = field(default_factory=list)
    is_completed: bool = False
    required_courses: int = 0
    completed_required_courses: int = 0
    required_percentage: float = 0.0

    def next_course(self) -> CourseProgressItem | None:
        """Course to resume: first in progress, otherwise first available."""
        for state in (CourseProgressState.IN_PROGRESS, CourseProgressState.AVAILABLE):
            for item in self.courses:
                if item.state == state:
                    return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path_enrollment_id": self.path_enrollment_id,
            "overall_percentage": self.overall_percentage,
            "total_courses": self.total_courses,
            "completed_courses": self.completed_courses,
            "in_progress_courses": self.in_progress_courses,
            "locked_courses": self.locked_courses,
            "available_courses": self.available_courses,
            "is_completed": self.is_completed,
            "required_courses": self.required_courses,
            "completed_required_courses": self.completed_required_courses,
            "required_percentage": self.required_percentage,
            "courses": [item.to_dict() for item in self.courses],
        }
