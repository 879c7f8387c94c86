"""
Prerequisite evaluation for learning paths.

An evaluator answers "may this locked course open now?" against the
current course-progress rows of a path enrollment. The path's
``prerequisite_mode`` picks the evaluator; an unknown mode is a hard
ConfigurationError because defaulting could unlock gated content.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from lms_core.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from lms_core.db.models import Course, LearningPath, LearningPathCourse, LearningPathEnrollment


class PrerequisiteMode(str, Enum):
    SEQUENTIAL = "sequential"
    IMMEDIATE_PREVIOUS = "immediate_previous"
    NONE = "none"


@dataclass(frozen=True)
class PrerequisiteCheckResult:
    is_met: bool
    missing_prerequisites: list[dict[str, Any]] = field(default_factory=list)
    reason: str | None = None

    @classmethod
    def met(cls) -> PrerequisiteCheckResult:
        return cls(True)

    @classmethod
    def not_met(cls, missing: list[dict[str, Any]], reason: str) -> PrerequisiteCheckResult:
        return cls(False, missing, reason)

    def missing_titles(self) -> list[str]:
        return [str(item["title"]) for item in self.missing_prerequisites]


# =============================================================================
# Evaluators
# =============================================================================


class PrerequisiteEvaluator(ABC):
    mode: ClassVar[PrerequisiteMode]

    @abstractmethod
    def evaluate(self, path_enrollment: LearningPathEnrollment, course: Course) -> PrerequisiteCheckResult:
        ...

    @staticmethod
    def _earlier_courses(path_enrollment: LearningPathEnrollment, target: LearningPathCourse) -> list[LearningPathCourse]:
        return [pc for pc in path_enrollment.learning_path.path_courses if pc.position < target.position]

    @staticmethod
    def _blocks(path_enrollment: LearningPathEnrollment, course_id: int) -> bool:
        row = path_enrollment.progress_for(course_id)
        return row is None or row.state.blocks_next()

    @staticmethod
    def _describe(path_course: LearningPathCourse) -> dict[str, Any]:
        return {"id": path_course.course_id, "title": path_course.course.title}


class SequentialEvaluator(PrerequisiteEvaluator):
    """Every course positioned before the candidate must be completed."""

    mode = PrerequisiteMode.SEQUENTIAL

    def evaluate(self, path_enrollment: LearningPathEnrollment, course: Course) -> PrerequisiteCheckResult:
        target = path_enrollment.learning_path.path_course_for(course.id)
        if target is None:
            return PrerequisiteCheckResult.not_met([], "Course not found in path")

        missing = [
            self._describe(pc)
            for pc in self._earlier_courses(path_enrollment, target)
            if self._blocks(path_enrollment, pc.course_id)
        ]
        if missing:
            return PrerequisiteCheckResult.not_met(missing, "Previous courses must be completed")
        return PrerequisiteCheckResult.met()


class ImmediatePreviousEvaluator(PrerequisiteEvaluator):
    """Only the course directly before the candidate must be completed."""

    mode = PrerequisiteMode.IMMEDIATE_PREVIOUS

    def evaluate(self, path_enrollment: LearningPathEnrollment, course: Course) -> PrerequisiteCheckResult:
        target = path_enrollment.learning_path.path_course_for(course.id)
        if target is None:
            return PrerequisiteCheckResult.not_met([], "Course not found in path")

        earlier = self._earlier_courses(path_enrollment, target)
        if not earlier:
            return PrerequisiteCheckResult.met()

        previous = max(earlier, key=lambda pc: pc.position)
        if self._blocks(path_enrollment, previous.course_id):
            return PrerequisiteCheckResult.not_met([self._describe(previous)], "Previous course must be completed")
        return PrerequisiteCheckResult.met()


class NoPrerequisiteEvaluator(PrerequisiteEvaluator):
    mode = PrerequisiteMode.NONE

    def evaluate(self, path_enrollment: LearningPathEnrollment, course: Course) -> PrerequisiteCheckResult:
        return PrerequisiteCheckResult.met()


# =============================================================================
# Factory
# =============================================================================


class PrerequisiteEvaluatorFactory:
    def __init__(self, default_mode: str = PrerequisiteMode.SEQUENTIAL.value):
        self._evaluators: dict[str, PrerequisiteEvaluator] = {
            evaluator.mode.value: evaluator
            for evaluator in (SequentialEvaluator(), ImmediatePreviousEvaluator(), NoPrerequisiteEvaluator())
        }
        # Fail at startup, not at the first unlock
        self.resolve(default_mode)
        self.default_mode = default_mode

    def make(self, path: LearningPath) -> PrerequisiteEvaluator:
        return self.resolve(path.prerequisite_mode or self.default_mode)

    def resolve(self, mode: str) -> PrerequisiteEvaluator:
        evaluator = self._evaluators.get(mode)
        if evaluator is None:
            raise ConfigurationError(
                f"Unknown prerequisite mode '{mode}' (expected one of: {', '.join(self.available_modes())})",
                mode=mode,
            )
        return evaluator

    def available_modes(self) -> list[str]:
        return list(self._evaluators)
