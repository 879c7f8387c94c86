"""Request/result models for assessment submission."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from .states import AttemptStatus


class SubmittedAnswer(BaseModel):
    """Learner input for one question: option id(s), a bool, or free text."""

    question_id: int
    answer: Any = None


class ManualGrade(BaseModel):
    """Instructor grade for one stored answer."""

    answer_id: int
    score: float = Field(..., ge=0)
    feedback: str | None = None


@dataclass
class SubmissionResult:
    total_score: float
    max_score: float
    percentage: float
    passed: bool
    status: AttemptStatus

    @property
    def requires_manual_grading(self) -> bool:
        return self.status == AttemptStatus.SUBMITTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "passed": self.passed,
            "status": self.status.value,
        }
