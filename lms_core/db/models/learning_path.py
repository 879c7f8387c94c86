"""
Learning Path Models.

SQLAlchemy models for multi-course curricula:
- LearningPath + its ordered course pivot (LearningPathCourse)
- LearningPathEnrollment (active / completed / dropped)
- LearningPathCourseProgress (locked / available / in_progress / completed),
  exactly one row per (path enrollment, course)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lms_core.learning_path.states import CourseProgressState, PathEnrollmentState

from .base import Base, enum_column
from .course import Course, Enrollment


class LearningPath(Base):
    __tablename__ = "learning_paths"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    # 'sequential', 'immediate_previous', 'none'; NULL means the configured default
    prerequisite_mode: Mapped[str | None] = mapped_column(String(32))

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    path_courses: Mapped[list[LearningPathCourse]] = relationship(
        back_populates="learning_path", order_by="LearningPathCourse.position", cascade="all, delete-orphan"
    )
    enrollments: Mapped[list[LearningPathEnrollment]] = relationship(back_populates="learning_path")

    def __repr__(self) -> str:
        return f"<LearningPath {self.id} '{self.title}' mode={self.prerequisite_mode}>"

    def path_course_for(self, course_id: int) -> LearningPathCourse | None:
        for path_course in self.path_courses:
            if path_course.course_id == course_id:
                return path_course
        return None


class LearningPathCourse(Base):
    """Pivot: a course's slot in a path."""

    __tablename__ = "learning_path_courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    learning_path_id: Mapped[int] = mapped_column(
        ForeignKey("learning_paths.id", ondelete="CASCADE"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    min_completion_percentage: Mapped[float | None] = mapped_column(Float)
    prerequisites: Mapped[dict[str, Any] | None] = mapped_column()

    learning_path: Mapped[LearningPath] = relationship(back_populates="path_courses")
    course: Mapped[Course] = relationship()

    __table_args__ = (UniqueConstraint("learning_path_id", "course_id", name="uq_path_course"),)

    def __repr__(self) -> str:
        return f"<LearningPathCourse path={self.learning_path_id} course={self.course_id} pos={self.position}>"


class LearningPathEnrollment(Base):
    __tablename__ = "learning_path_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    learning_path_id: Mapped[int] = mapped_column(
        ForeignKey("learning_paths.id", ondelete="CASCADE"), nullable=False
    )
    state: Mapped[PathEnrollmentState] = mapped_column(
        enum_column(PathEnrollmentState), default=PathEnrollmentState.ACTIVE
    )
    progress_percentage: Mapped[float] = mapped_column(Float, default=0.0)

    enrolled_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()
    dropped_at: Mapped[datetime | None] = mapped_column()
    drop_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    learning_path: Mapped[LearningPath] = relationship(back_populates="enrollments")
    course_progress: Mapped[list[LearningPathCourseProgress]] = relationship(
        back_populates="path_enrollment",
        order_by="LearningPathCourseProgress.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "learning_path_id", name="uq_path_enrollment_user_path"),
        Index("idx_path_enrollment_state", "learning_path_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<LearningPathEnrollment {self.id} user={self.user_id} path={self.learning_path_id} {self.state} {self.progress_percentage}%>"

    def progress_for(self, course_id: int) -> LearningPathCourseProgress | None:
        for row in self.course_progress:
            if row.course_id == course_id:
                return row
        return None


class LearningPathCourseProgress(Base):
    __tablename__ = "learning_path_course_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    learning_path_enrollment_id: Mapped[int] = mapped_column(
        ForeignKey("learning_path_enrollments.id", ondelete="CASCADE"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    course_enrollment_id: Mapped[int | None] = mapped_column(
        ForeignKey("enrollments.id", ondelete="SET NULL"), index=True
    )
    state: Mapped[CourseProgressState] = mapped_column(
        enum_column(CourseProgressState), default=CourseProgressState.LOCKED
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    unlocked_at: Mapped[datetime | None] = mapped_column()
    started_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()

    path_enrollment: Mapped[LearningPathEnrollment] = relationship(back_populates="course_progress")
    course: Mapped[Course] = relationship()
    course_enrollment: Mapped[Enrollment | None] = relationship()

    __table_args__ = (
        UniqueConstraint("learning_path_enrollment_id", "course_id", name="uq_path_course_progress"),
        Index("idx_path_course_progress_state", "learning_path_enrollment_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<LearningPathCourseProgress enrollment={self.learning_path_enrollment_id} course={self.course_id} {self.state}>"
