"""
Course-level enrollment service.

Owns the Enrollment lifecycle (enroll / reactivate / complete / drop) and
notifies registered CourseEnrollmentObservers synchronously, inside the
same unit of work, when an enrollment starts, completes or is dropped.
The learning-path progress service is the observer that keeps enclosing
paths consistent.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from lms_core.core.clock import utcnow
from lms_core.core.events import CourseEnrollmentCompleted, CourseEnrollmentDropped, EventDispatcher
from lms_core.core.exceptions import AlreadyEnrolledError, CourseNotPublishedError
from lms_core.db.database import transaction
from lms_core.db.models import Course, Enrollment

from .states import EnrollmentStatus, ensure_enrollment_transition


class CourseEnrollmentObserver(Protocol):
    def course_enrollment_started(self, enrollment: Enrollment) -> None: ...

    def course_enrollment_completed(self, enrollment: Enrollment) -> None: ...

    def course_enrollment_dropped(self, enrollment: Enrollment) -> None: ...


class EnrollmentService:
    def __init__(
        self,
        session: Session,
        events: EventDispatcher | None = None,
        observers: Iterable[CourseEnrollmentObserver] = (),
    ):
        self.session = session
        self.events = events or EventDispatcher()
        self._observers: list[CourseEnrollmentObserver] = list(observers)

    def add_observer(self, observer: CourseEnrollmentObserver) -> None:
        self._observers.append(observer)

    # =========================================================================
    # Queries
    # =========================================================================

    def find_enrollment(self, user_id: int, course_id: int) -> Enrollment | None:
        """Any enrollment for user+course, whatever its status."""
        return self.session.scalars(
            select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        ).first()

    def get_active_enrollment(self, user_id: int, course_id: int) -> Enrollment | None:
        """Active or completed enrollment (the learner still 'has' the course)."""
        enrollment = self.find_enrollment(user_id, course_id)
        if enrollment is not None and enrollment.status.is_current:
            return enrollment
        return None

    def can_enroll(self, user_id: int, course: Course) -> bool:
        return course.is_published and self.get_active_enrollment(user_id, course.id) is None

    # =========================================================================
    # Commands
    # =========================================================================

    def enroll(self, user_id: int, course: Course, preserve_progress: bool = True) -> Enrollment:
        """
        Enroll a user, reactivating a dropped enrollment in place.

        Raises:
            AlreadyEnrolledError: active or completed enrollment exists
            CourseNotPublishedError: course is not published
        """
        existing = self.find_enrollment(user_id, course.id)
        if existing is not None and existing.status.is_current:
            raise AlreadyEnrolledError(user_id, "Course", course.id)
        if not course.is_published:
            raise CourseNotPublishedError(course.id)

        with transaction(self.session):
            if existing is not None:
                self._reactivate(existing, preserve_progress)
                enrollment = existing
            else:
                enrollment = Enrollment(
                    user_id=user_id,
                    course=course,
                    status=EnrollmentStatus.ACTIVE,
                    progress_percentage=0.0,
                    enrolled_at=utcnow(),
                )
                self.session.add(enrollment)
            self.session.flush()

        logger.info(f"User {user_id} enrolled in course {course.id} (enrollment {enrollment.id})")
        return enrollment

    def ensure_enrollment(self, user_id: int, course: Course) -> Enrollment:
        """Reuse an active/completed enrollment, otherwise enroll (or reactivate)."""
        return self.get_active_enrollment(user_id, course.id) or self.enroll(user_id, course)

    def mark_started(self, enrollment: Enrollment) -> None:
        """Stamp started_at on first activity and tell observers."""
        if enrollment.started_at is not None:
            return
        with transaction(self.session):
            enrollment.started_at = utcnow()
            for observer in self._observers:
                observer.course_enrollment_started(enrollment)

    def complete(self, enrollment: Enrollment) -> None:
        """Idempotent: completing a completed enrollment does nothing."""
        if enrollment.status == EnrollmentStatus.COMPLETED:
            return
        ensure_enrollment_transition(enrollment.id, enrollment.status, EnrollmentStatus.COMPLETED)

        with transaction(self.session):
            enrollment.status = EnrollmentStatus.COMPLETED
            enrollment.completed_at = utcnow()
            enrollment.progress_percentage = 100.0
            for observer in self._observers:
                observer.course_enrollment_completed(enrollment)

        logger.info(f"Enrollment {enrollment.id} completed (user {enrollment.user_id}, course {enrollment.course_id})")
        self.events.dispatch(
            CourseEnrollmentCompleted(
                enrollment_id=enrollment.id, user_id=enrollment.user_id, course_id=enrollment.course_id
            )
        )

    def drop(self, enrollment: Enrollment, reason: str | None = None) -> None:
        """
        Drop an active or completed enrollment.

        Observers run the learning-path drop-cascade in the same unit.
        """
        ensure_enrollment_transition(enrollment.id, enrollment.status, EnrollmentStatus.DROPPED)

        with transaction(self.session):
            enrollment.status = EnrollmentStatus.DROPPED
            enrollment.dropped_at = utcnow()
            enrollment.drop_reason = reason
            for observer in self._observers:
                observer.course_enrollment_dropped(enrollment)

        logger.info(f"Enrollment {enrollment.id} dropped: {reason or 'no reason given'}")
        self.events.dispatch(
            CourseEnrollmentDropped(
                enrollment_id=enrollment.id,
                user_id=enrollment.user_id,
                course_id=enrollment.course_id,
                reason=reason,
            )
        )

    def _reactivate(self, enrollment: Enrollment, preserve_progress: bool) -> None:
        ensure_enrollment_transition(enrollment.id, enrollment.status, EnrollmentStatus.ACTIVE)
        enrollment.status = EnrollmentStatus.ACTIVE
        enrollment.enrolled_at = utcnow()
        enrollment.completed_at = None
        enrollment.dropped_at = None
        enrollment.drop_reason = None
        if not preserve_progress:
            enrollment.progress_percentage = 0.0
            enrollment.started_at = None
            enrollment.last_lesson_id = None
        logger.info(
            f"Enrollment {enrollment.id} reactivated ({'progress preserved' if preserve_progress else 'progress reset'})"
        )
