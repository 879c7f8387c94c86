"""
Progress calculator selection.

A course's ``progress_calculator_type`` wins over the configured default.
Unknown names fall back to lesson-based with a warning: a slightly wrong
progress number is preferable to breaking progress tracking.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from .calculators import (
    AssessmentInclusiveProgressCalculator,
    CalculatorType,
    LessonBasedProgressCalculator,
    ProgressCalculator,
    WeightedProgressCalculator,
)

if TYPE_CHECKING:
    from lms_core.db.models import Course


class ProgressCalculatorFactory:
    def __init__(
        self,
        default_type: str = CalculatorType.LESSON_BASED.value,
        lesson_weight: float = 0.7,
        assessment_weight: float = 0.3,
    ):
        lesson_based = LessonBasedProgressCalculator()
        self._calculators: dict[str, ProgressCalculator] = {
            CalculatorType.LESSON_BASED.value: lesson_based,
            CalculatorType.WEIGHTED.value: WeightedProgressCalculator(fallback=lesson_based),
            CalculatorType.ASSESSMENT_INCLUSIVE.value: AssessmentInclusiveProgressCalculator(
                lesson_weight=lesson_weight, assessment_weight=assessment_weight
            ),
        }
        self.default_type = default_type

    def for_course(self, course: Course) -> ProgressCalculator:
        return self.resolve(course.progress_calculator_type or self.default_type)

    def resolve(self, name: str | None) -> ProgressCalculator:
        calculator = self._calculators.get((name or "").strip().lower())
        if calculator is None:
            logger.warning(f"Unknown progress calculator '{name}', falling back to lesson_based")
            return self._calculators[CalculatorType.LESSON_BASED.value]
        return calculator

    def get_default(self) -> ProgressCalculator:
        return self.resolve(self.default_type)

    @property
    def lesson_based(self) -> LessonBasedProgressCalculator:
        return self._calculators[CalculatorType.LESSON_BASED.value]  # type: ignore[return-value]

    def available_types(self) -> list[str]:
        return list(self._calculators)
