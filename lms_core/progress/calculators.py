"""
Course progress calculators.

Each calculator turns a course Enrollment into a completion percentage
and a completed/not-completed verdict. They only read the enrollment's
object graph (course lessons, lesson progress, assessments, attempts)
and never write.

Calculators:
- LessonBasedProgressCalculator: completed lessons / lessons (default)
- WeightedProgressCalculator: lessons weighted by estimated duration
- AssessmentInclusiveProgressCalculator: 70% lessons + 30% assessments
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from lms_core.db.models import Enrollment, LearningPathCourseProgress, LearningPathEnrollment, Lesson


class CalculatorType(str, Enum):
    LESSON_BASED = "lesson_based"
    WEIGHTED = "weighted"
    ASSESSMENT_INCLUSIVE = "assessment_inclusive"


@dataclass(frozen=True)
class AssessmentStats:
    """Published-assessment standing of one learner in one course."""

    total: int = 0
    passed: int = 0
    pending: int = 0
    required_total: int = 0
    required_passed: int = 0

    @property
    def all_required_passed(self) -> bool:
        return self.required_passed >= self.required_total

    @property
    def required_pending(self) -> int:
        return self.required_total - self.required_passed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Base
# =============================================================================


class ProgressCalculator(ABC):
    name: ClassVar[str] = "base"

    @abstractmethod
    def calculate(self, enrollment: Enrollment) -> float:
        """Completion percentage in [0, 100]."""
        ...

    @abstractmethod
    def is_complete(self, enrollment: Enrollment) -> bool:
        ...

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _lessons(enrollment: Enrollment) -> list[Lesson]:
        return enrollment.course.active_lessons

    @staticmethod
    def _completed_lesson_ids(enrollment: Enrollment) -> set[int]:
        return {p.lesson_id for p in enrollment.lesson_progress if p.is_completed}

    def _lesson_counts(self, enrollment: Enrollment) -> tuple[int, int]:
        """(completed, total) over existing lessons; orphaned progress rows are ignored."""
        lessons = self._lessons(enrollment)
        completed_ids = self._completed_lesson_ids(enrollment)
        completed = sum(1 for lesson in lessons if lesson.id in completed_ids)
        return completed, len(lessons)


# =============================================================================
# Lesson Based
# =============================================================================


class LessonBasedProgressCalculator(ProgressCalculator):
    """
    Count-based progress.

    Also provides the learning-path variant: the share of required path
    courses completed (every course counts when none is marked required).
    """

    name = CalculatorType.LESSON_BASED.value

    def calculate(self, enrollment: Enrollment) -> float:
        completed, total = self._lesson_counts(enrollment)
        if total == 0:
            return 0.0
        return round(completed / total * 100, 1)

    def is_complete(self, enrollment: Enrollment) -> bool:
        completed, total = self._lesson_counts(enrollment)
        return total > 0 and completed >= total

    def calculate_path_progress(self, path_enrollment: LearningPathEnrollment) -> float:
        rows = self._counted_path_rows(path_enrollment)
        if not rows:
            return 0.0
        completed = sum(1 for row in rows if row.state.is_completed())
        return round(completed / len(rows) * 100, 1)

    def is_path_complete(self, path_enrollment: LearningPathEnrollment) -> bool:
        return all(row.state.is_completed() for row in self._counted_path_rows(path_enrollment))

    @staticmethod
    def _counted_path_rows(path_enrollment: LearningPathEnrollment) -> list[LearningPathCourseProgress]:
        required_ids = {
            pc.course_id for pc in path_enrollment.learning_path.path_courses if pc.is_required
        }
        rows = list(path_enrollment.course_progress)
        if not required_ids:
            return rows
        return [row for row in rows if row.course_id in required_ids]


# =============================================================================
# Weighted
# =============================================================================


class WeightedProgressCalculator(ProgressCalculator):
    """Progress weighted by each lesson's estimated_duration_minutes."""

    name = CalculatorType.WEIGHTED.value

    def __init__(self, fallback: LessonBasedProgressCalculator | None = None):
        self._fallback = fallback or LessonBasedProgressCalculator()

    def calculate(self, enrollment: Enrollment) -> float:
        lessons = self._lessons(enrollment)
        total = sum(lesson.estimated_duration_minutes or 0 for lesson in lessons)
        if total <= 0:
            return self._fallback.calculate(enrollment)

        completed_ids = self._completed_lesson_ids(enrollment)
        done = sum(lesson.estimated_duration_minutes or 0 for lesson in lessons if lesson.id in completed_ids)
        return round(done / total * 100, 1)

    def is_complete(self, enrollment: Enrollment) -> bool:
        return self.calculate(enrollment) >= 100


# =============================================================================
# Assessment Inclusive
# =============================================================================


class AssessmentInclusiveProgressCalculator(ProgressCalculator):
    """
    Blend of lesson and assessment progress.

    percentage = lesson_pct * 0.7 + assessment_pct * 0.3, where
    assessment_pct is the share of published assessments with a passing
    attempt. Completion needs every lesson done and a passing attempt on
    every required, published assessment.
    """

    name = CalculatorType.ASSESSMENT_INCLUSIVE.value

    def __init__(self, lesson_weight: float = 0.7, assessment_weight: float = 0.3):
        self.lesson_weight = lesson_weight
        self.assessment_weight = assessment_weight

    def calculate(self, enrollment: Enrollment) -> float:
        completed, total = self._lesson_counts(enrollment)
        lesson_pct = 100.0 if total == 0 else completed / total * 100

        stats = self.assessment_stats(enrollment)
        assessment_pct = 100.0 if stats.total == 0 else stats.passed / stats.total * 100

        return round(lesson_pct * self.lesson_weight + assessment_pct * self.assessment_weight, 1)

    def is_complete(self, enrollment: Enrollment) -> bool:
        completed, total = self._lesson_counts(enrollment)
        if completed < total:
            return False
        return self.assessment_stats(enrollment).all_required_passed

    def assessment_stats(self, enrollment: Enrollment) -> AssessmentStats:
        published = [a for a in enrollment.course.assessments if a.is_published]
        if not published:
            return AssessmentStats()

        passed_ids = {a.id for a in published if a.has_passing_attempt(enrollment.user_id)}
        required = [a for a in published if a.is_required]
        return AssessmentStats(
            total=len(published),
            passed=len(passed_ids),
            pending=len(published) - len(passed_ids),
            required_total=len(required),
            required_passed=sum(1 for a in required if a.id in passed_ids),
        )
