"""Request/result models for lesson progress tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator

from .calculators import AssessmentStats

if TYPE_CHECKING:
    from lms_core.db.models import LessonProgress


class ProgressUpdate(BaseModel):
    """
    One progress ping from the lesson player.

    Either page fields (current_page, total_pages) or media fields
    (media_position_seconds + media_duration_seconds) - never both.
    """

    enrollment_id: int
    lesson_id: int
    current_page: int | None = Field(None, ge=1)
    total_pages: int | None = Field(None, ge=1)
    time_spent_seconds: int = Field(0, ge=0, description="Seconds spent since the previous ping")
    media_position_seconds: float | None = Field(None, ge=0)
    media_duration_seconds: float | None = Field(None, ge=0)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _page_or_media(self) -> ProgressUpdate:
        if self.is_page_progress and (self.media_position_seconds is not None or self.media_duration_seconds is not None):
            raise ValueError("page and media progress cannot be sent in the same update")
        return self

    @property
    def is_page_progress(self) -> bool:
        return self.current_page is not None

    @property
    def is_media_progress(self) -> bool:
        return self.media_position_seconds is not None and self.media_duration_seconds is not None


@dataclass
class ProgressResult:
    progress: LessonProgress
    course_percentage: float
    lesson_completed: bool
    course_completed: bool
    assessment_stats: AssessmentStats | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_progress_id": self.progress.id,
            "lesson_id": self.progress.lesson_id,
            "course_percentage": self.course_percentage,
            "lesson_completed": self.lesson_completed,
            "course_completed": self.course_completed,
            "assessment_stats": self.assessment_stats.to_dict() if self.assessment_stats else None,
        }
