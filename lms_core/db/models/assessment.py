"""
Assessment Models.

SQLAlchemy models for quizzes/exams:
- Assessments with ordered questions and answer options
- Attempts (optimistically versioned) and their per-question answers
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lms_core.assessment.states import AttemptStatus

from .base import Base, enum_column

if TYPE_CHECKING:
    from .course import Course


class AssessmentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Assessment(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[AssessmentStatus] = mapped_column(
        enum_column(AssessmentStatus), default=AssessmentStatus.DRAFT
    )
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    passing_score: Mapped[float | None] = mapped_column(Float)  # percentage
    max_attempts: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(default=func.now())

    course: Mapped[Course] = relationship(back_populates="assessments")
    questions: Mapped[list[Question]] = relationship(
        back_populates="assessment", order_by="Question.position", cascade="all, delete-orphan"
    )
    attempts: Mapped[list[AssessmentAttempt]] = relationship(back_populates="assessment")

    def __repr__(self) -> str:
        return f"<Assessment {self.id} '{self.title}' status={self.status} required={self.is_required}>"

    @property
    def is_published(self) -> bool:
        return self.status == AssessmentStatus.PUBLISHED

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def has_passing_attempt(self, user_id: int) -> bool:
        return any(a.user_id == user_id and a.passed for a in self.attempts)


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assessment_id: Mapped[int | None] = mapped_column(ForeignKey("assessments.id", ondelete="CASCADE"), index=True)
    # single_choice, multiple_choice, true_false, short_answer, fill_blank,
    # essay, long_answer, file_upload, code, matching
    question_type: Mapped[str] = mapped_column(String(32), nullable=False)
    question_text: Mapped[str] = mapped_column(Text, default="")
    points: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, default=0)
    correct_answer: Mapped[str | None] = mapped_column(Text)  # comma-separated for short answers
    case_sensitive: Mapped[bool] = mapped_column(Boolean, default=False)
    grading_rubric: Mapped[dict[str, Any] | None] = mapped_column()

    assessment: Mapped[Assessment | None] = relationship(back_populates="questions")
    options: Mapped[list[QuestionOption]] = relationship(
        back_populates="question", order_by="QuestionOption.position", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Question {self.id} type={self.question_type} points={self.points}>"

    @property
    def correct_options(self) -> list[QuestionOption]:
        return [o for o in self.options if o.is_correct]


class QuestionOption(Base):
    __tablename__ = "question_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_id: Mapped[int | None] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), index=True)
    option_text: Mapped[str] = mapped_column(Text, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, default=0)

    question: Mapped[Question | None] = relationship(back_populates="options")

    def __repr__(self) -> str:
        return f"<QuestionOption {self.id} correct={self.is_correct}>"


class AssessmentAttempt(Base):
    """
    One learner's attempt at an assessment.

    ``version`` is SQLAlchemy's optimistic-concurrency counter: two sessions
    submitting the same attempt cannot both flush.
    """

    __tablename__ = "assessment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assessment_id: Mapped[int] = mapped_column(
        ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[AttemptStatus] = mapped_column(enum_column(AttemptStatus), default=AttemptStatus.IN_PROGRESS)

    score: Mapped[float | None] = mapped_column(Float)
    max_score: Mapped[float | None] = mapped_column(Float)
    percentage: Mapped[float | None] = mapped_column(Float)
    passed: Mapped[bool | None] = mapped_column(Boolean)

    started_at: Mapped[datetime | None] = mapped_column()
    submitted_at: Mapped[datetime | None] = mapped_column()
    graded_at: Mapped[datetime | None] = mapped_column()
    graded_by: Mapped[int | None] = mapped_column(Integer)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    assessment: Mapped[Assessment] = relationship(back_populates="attempts")
    answers: Mapped[list[AttemptAnswer]] = relationship(back_populates="attempt", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_attempt_user_assessment", "user_id", "assessment_id"),)
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<AssessmentAttempt {self.id} user={self.user_id} status={self.status} {self.percentage}%>"


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attempt_id: Mapped[int] = mapped_column(
        ForeignKey("assessment_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)

    # Raw learner input
    answer_text: Mapped[str | None] = mapped_column(Text)
    selected_options: Mapped[list[Any] | None] = mapped_column()

    # Grading outcome
    is_correct: Mapped[bool | None] = mapped_column(Boolean)
    score: Mapped[float | None] = mapped_column(Float)
    feedback: Mapped[str | None] = mapped_column(Text)
    grading_metadata: Mapped[dict[str, Any] | None] = mapped_column()
    graded_at: Mapped[datetime | None] = mapped_column()
    graded_by: Mapped[int | None] = mapped_column(Integer)

    attempt: Mapped[AssessmentAttempt] = relationship(back_populates="answers")
    question: Mapped[Question] = relationship()

    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),)

    def __repr__(self) -> str:
        return f"<AttemptAnswer attempt={self.attempt_id} question={self.question_id} score={self.score}>"

    @property
    def raw_answer(self) -> Any:
        """What the grader sees: selected option ids, or the free text."""
        if self.selected_options is not None:
            return self.selected_options
        return self.answer_text

    @property
    def requires_manual_grading(self) -> bool:
        return bool((self.grading_metadata or {}).get("requires_manual_grading"))
