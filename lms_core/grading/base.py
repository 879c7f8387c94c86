"""
Base Grading Strategy.

Provides the grading result type, the question-type vocabulary and the
abstract contract every auto/manual grader implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from lms_core.db.models import Question


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    BOOLEAN = "boolean"
    SHORT_ANSWER = "short_answer"
    FILL_BLANK = "fill_blank"
    ESSAY = "essay"
    LONG_ANSWER = "long_answer"
    FILE_UPLOAD = "file_upload"
    CODE = "code"
    MATCHING = "matching"


class GradingOutcome(str, Enum):
    """Whether a score is final or a placeholder awaiting a human."""

    FINAL = "final"
    PENDING_REVIEW = "pending_review"


# =============================================================================
# Grading Result
# =============================================================================


@dataclass
class GradingResult:
    """
    Result of grading one answer.

    ``max_score`` always equals the question's points and
    ``0 <= score <= max_score``. A PENDING_REVIEW result is never correct;
    its score is a placeholder (0) until an instructor grades it.
    """

    is_correct: bool
    score: float
    max_score: float
    feedback: str
    metadata: dict[str, Any] = field(default_factory=dict)
    outcome: GradingOutcome = GradingOutcome.FINAL

    def __post_init__(self) -> None:
        if self.max_score < 0:
            raise ValueError(f"max_score must be >= 0, got {self.max_score}")
        if not 0 <= self.score <= self.max_score:
            raise ValueError(f"score {self.score} outside 0..{self.max_score}")

    @classmethod
    def correct(cls, max_score: float, feedback: str, metadata: dict[str, Any] | None = None) -> GradingResult:
        return cls(True, float(max_score), float(max_score), feedback, dict(metadata or {}))

    @classmethod
    def incorrect(cls, max_score: float, feedback: str, metadata: dict[str, Any] | None = None) -> GradingResult:
        return cls(False, 0.0, float(max_score), feedback, dict(metadata or {}))

    @classmethod
    def partial(
        cls, score: float, max_score: float, feedback: str, metadata: dict[str, Any] | None = None
    ) -> GradingResult:
        return cls(score > 0, float(score), float(max_score), feedback, dict(metadata or {}))

    @classmethod
    def pending_review(
        cls, max_score: float, feedback: str, metadata: dict[str, Any] | None = None
    ) -> GradingResult:
        meta = {**(metadata or {}), "requires_manual_grading": True}
        return cls(False, 0.0, float(max_score), feedback, meta, GradingOutcome.PENDING_REVIEW)

    @property
    def requires_manual_grading(self) -> bool:
        return self.outcome is GradingOutcome.PENDING_REVIEW

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.score / self.max_score * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "is_correct": self.is_correct,
            "score": self.score,
            "max_score": self.max_score,
            "feedback": self.feedback,
            "metadata": self.metadata,
            "outcome": self.outcome.value,
        }


# =============================================================================
# Base Grading Strategy
# =============================================================================


class GradingStrategy(ABC):
    """
    Abstract base class for grading strategies.

    Each strategy declares the question types it handles and turns
    (question, raw answer) into a GradingResult. Strategies never raise on
    malformed learner input: they grade it as incorrect.
    """

    name: ClassVar[str] = "base_strategy"
    handled_types: ClassVar[frozenset[str]] = frozenset()

    def supports(self, question: Question) -> bool:
        return question.question_type in self.handled_types

    @abstractmethod
    def grade(self, question: Question, answer: Any) -> GradingResult:
        """
        Grade a learner answer.

        Args:
            question: The question being answered
            answer: Raw learner input (option id(s), bool or text)

        Returns:
            GradingResult with score and feedback
        """
        ...

    @staticmethod
    def _max_points(question: Question) -> float:
        return float(question.points or 0)
