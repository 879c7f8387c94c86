"""
Course Models.

SQLAlchemy models for course delivery:
- Courses and their lessons (lessons are soft-deleted)
- Course-level enrollments
- Per-lesson progress (paged or media content)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lms_core.enrollment.states import EnrollmentStatus

from .base import Base, enum_column

if TYPE_CHECKING:
    from .assessment import Assessment


class CourseStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Course(Base):
    """A course: ordered lessons plus assessments."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[CourseStatus] = mapped_column(enum_column(CourseStatus), default=CourseStatus.DRAFT)
    # Per-course calculator override ('lesson_based', 'weighted', 'assessment_inclusive')
    progress_calculator_type: Mapped[str | None] = mapped_column(String(32))

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    lessons: Mapped[list[Lesson]] = relationship(
        back_populates="course", order_by="Lesson.position", cascade="all, delete-orphan"
    )
    assessments: Mapped[list[Assessment]] = relationship(
        back_populates="course", order_by="Assessment.id", cascade="all, delete-orphan"
    )
    enrollments: Mapped[list[Enrollment]] = relationship(back_populates="course")

    def __repr__(self) -> str:
        return f"<Course {self.id} '{self.title}' status={self.status}>"

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.PUBLISHED

    @property
    def active_lessons(self) -> list[Lesson]:
        """Lessons that are not soft-deleted."""
        return [lesson for lesson in self.lessons if lesson.deleted_at is None]


class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(32), default="text")  # text, pdf, video, audio
    position: Mapped[int] = mapped_column(Integer, default=0)
    estimated_duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    deleted_at: Mapped[datetime | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(default=func.now())

    course: Mapped[Course] = relationship(back_populates="lessons")

    def __repr__(self) -> str:
        return f"<Lesson {self.id} course={self.course_id} '{self.title}'>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Enrollment(Base):
    """
    A user's enrollment in a single course.

    progress_percentage is written only by the configured ProgressCalculator
    or set to 100 on explicit completion.
    """

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[EnrollmentStatus] = mapped_column(
        enum_column(EnrollmentStatus), default=EnrollmentStatus.ACTIVE
    )
    progress_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    last_lesson_id: Mapped[int | None] = mapped_column(ForeignKey("lessons.id", ondelete="SET NULL"))

    enrolled_at: Mapped[datetime | None] = mapped_column()
    started_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()
    dropped_at: Mapped[datetime | None] = mapped_column()
    drop_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    course: Mapped[Course] = relationship(back_populates="enrollments")
    lesson_progress: Mapped[list[LessonProgress]] = relationship(
        back_populates="enrollment", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
        Index("idx_enrollment_status", "course_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} user={self.user_id} course={self.course_id} {self.status} {self.progress_percentage}%>"

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED


class LessonProgress(Base):
    """Progress of one enrollment through one lesson (paged or media)."""

    __tablename__ = "lesson_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    enrollment_id: Mapped[int] = mapped_column(
        ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)

    # Paged content
    current_page: Mapped[int] = mapped_column(Integer, default=1)
    highest_page_reached: Mapped[int] = mapped_column(Integer, default=1)
    total_pages: Mapped[int | None] = mapped_column(Integer)

    # Media content
    media_position_seconds: Mapped[float | None] = mapped_column(Float)
    media_duration_seconds: Mapped[float | None] = mapped_column(Float)
    media_progress_percentage: Mapped[float | None] = mapped_column(Float)

    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column()
    last_viewed_at: Mapped[datetime | None] = mapped_column()
    progress_metadata: Mapped[dict[str, Any] | None] = mapped_column()

    enrollment: Mapped[Enrollment] = relationship(back_populates="lesson_progress")
    lesson: Mapped[Lesson] = relationship()

    __table_args__ = (UniqueConstraint("enrollment_id", "lesson_id", name="uq_lesson_progress"),)

    def __repr__(self) -> str:
        return f"<LessonProgress enrollment={self.enrollment_id} lesson={self.lesson_id} completed={self.is_completed}>"
