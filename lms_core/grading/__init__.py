"""
Grading Strategies Package.

Per-question graders and the resolver that dispatches to them.

Usage:
    from lms_core.grading import GradingStrategyResolver

    resolver = GradingStrategyResolver.from_settings(get_settings())
    result = resolver.grade(question, answer)
"""

from .base import GradingOutcome, GradingResult, GradingStrategy, QuestionType
from .resolver import GradingStrategyResolver
from .strategies import (
    ManualGradingStrategy,
    MultipleChoiceStrategy,
    ShortAnswerStrategy,
    TrueFalseStrategy,
)

__all__ = [
    "GradingOutcome",
    "GradingResult",
    "GradingStrategy",
    "GradingStrategyResolver",
    "ManualGradingStrategy",
    "MultipleChoiceStrategy",
    "QuestionType",
    "ShortAnswerStrategy",
    "TrueFalseStrategy",
]
