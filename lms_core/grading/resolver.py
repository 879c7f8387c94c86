"""
Grading strategy resolution.

The resolver indexes its strategies by handled question type once at
construction, so dispatch is a dict lookup. Two strategies claiming the
same type is a wiring bug and fails at construction.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from loguru import logger

from lms_core.core.exceptions import ConfigurationError

from .base import GradingResult, GradingStrategy
from .strategies import (
    ManualGradingStrategy,
    MultipleChoiceStrategy,
    ShortAnswerStrategy,
    TrueFalseStrategy,
)

if TYPE_CHECKING:
    from config import Settings
    from lms_core.db.models import Question

FEEDBACK_UNSUPPORTED = "Tipe soal tidak didukung untuk penilaian otomatis."


class GradingStrategyResolver:
    def __init__(self, strategies: Iterable[GradingStrategy]):
        self._strategies = list(strategies)
        self._by_type: dict[str, GradingStrategy] = {}
        for strategy in self._strategies:
            for question_type in strategy.handled_types:
                if question_type in self._by_type:
                    raise ConfigurationError(
                        f"Question type '{question_type}' claimed by both "
                        f"{self._by_type[question_type].name} and {strategy.name}",
                        question_type=question_type,
                    )
                self._by_type[question_type] = strategy

    @classmethod
    def from_settings(cls, settings: Settings) -> GradingStrategyResolver:
        """Build the standard strategy set with thresholds from settings."""
        return cls(
            [
                MultipleChoiceStrategy(partial_credit=settings.multiple_choice_partial_credit),
                TrueFalseStrategy(settings.true_values, settings.false_values),
                ShortAnswerStrategy(similarity_threshold=settings.short_answer_similarity_threshold),
                ManualGradingStrategy(),
            ]
        )

    def resolve(self, question: Question) -> GradingStrategy | None:
        """Strategy for the question's type, or None when nothing claims it."""
        strategy = self._by_type.get(question.question_type)
        if strategy is not None and strategy.supports(question):
            return strategy
        return None

    def grade(self, question: Question, answer: Any) -> GradingResult:
        """Grade with the resolved strategy; unclaimed types go to manual review."""
        strategy = self.resolve(question)
        if strategy is None:
            logger.warning(f"No grading strategy for question {question.id} (type={question.question_type})")
            return GradingResult.pending_review(float(question.points or 0), FEEDBACK_UNSUPPORTED)
        return strategy.grade(question, answer)

    def supported_types(self) -> list[str]:
        return sorted(self._by_type)

    def strategy_name(self, question_type: str) -> str | None:
        strategy = self._by_type.get(question_type)
        return strategy.name if strategy is not None else None
