"""
Course progress: calculators, their factory and lesson progress tracking.
"""

from .calculators import (
    AssessmentInclusiveProgressCalculator,
    AssessmentStats,
    CalculatorType,
    LessonBasedProgressCalculator,
    ProgressCalculator,
    WeightedProgressCalculator,
)
from .factory import ProgressCalculatorFactory
from .schemas import ProgressResult, ProgressUpdate
from .tracking import ProgressTrackingService

__all__ = [
    "AssessmentInclusiveProgressCalculator",
    "AssessmentStats",
    "CalculatorType",
    "LessonBasedProgressCalculator",
    "ProgressCalculator",
    "ProgressCalculatorFactory",
    "ProgressResult",
    "ProgressTrackingService",
    "ProgressUpdate",
    "WeightedProgressCalculator",
]
