"""
Learning path enrollment service.

Creates path enrollments together with one course-progress row per path
course, reactivates dropped enrollments, and applies drop/complete
transitions of the path enrollment state machine.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from lms_core.core.clock import utcnow
from lms_core.core.events import EventDispatcher, PathCompleted, PathDropped, PathEnrollmentCreated
from lms_core.core.exceptions import AlreadyEnrolledError, PathNotPublishedError
from lms_core.db.database import transaction
from lms_core.db.models import Course, Enrollment, LearningPath, LearningPathCourseProgress, LearningPathEnrollment
from lms_core.enrollment.service import EnrollmentService

from .prerequisites import PrerequisiteEvaluator, PrerequisiteEvaluatorFactory, PrerequisiteMode
from .schemas import PathEnrollmentResult
from .states import CourseProgressState, PathEnrollmentState, ensure_transition


class PathEnrollmentObserver(Protocol):
    def path_enrollment_activated(self, enrollment: LearningPathEnrollment) -> None: ...


class PathEnrollmentService:
    def __init__(
        self,
        session: Session,
        evaluators: PrerequisiteEvaluatorFactory,
        enrollments: EnrollmentService,
        events: EventDispatcher | None = None,
        observers: Iterable[PathEnrollmentObserver] = (),
    ):
        self.session = session
        self.evaluators = evaluators
        self.enrollments = enrollments
        self.events = events or EventDispatcher()
        self._observers: list[PathEnrollmentObserver] = list(observers)

    def add_observer(self, observer: PathEnrollmentObserver) -> None:
        self._observers.append(observer)

    # =========================================================================
    # Queries
    # =========================================================================

    def find_enrollment(self, user_id: int, path_id: int) -> LearningPathEnrollment | None:
        return self.session.scalars(
            select(LearningPathEnrollment).where(
                LearningPathEnrollment.user_id == user_id,
                LearningPathEnrollment.learning_path_id == path_id,
            )
        ).first()

    def get_active_enrollment(self, user_id: int, path_id: int) -> LearningPathEnrollment | None:
        """Active or completed enrollment."""
        enrollment = self.find_enrollment(user_id, path_id)
        if enrollment is not None and enrollment.state != PathEnrollmentState.DROPPED:
            return enrollment
        return None

    def is_enrolled(self, user_id: int, path_id: int) -> bool:
        return self.get_active_enrollment(user_id, path_id) is not None

    def can_enroll(self, user_id: int, path: LearningPath) -> bool:
        return bool(path.is_published) and not self.is_enrolled(user_id, path.id)

    def get_active_enrollments(self, user_id: int) -> list[LearningPathEnrollment]:
        return list(
            self.session.scalars(
                select(LearningPathEnrollment)
                .where(
                    LearningPathEnrollment.user_id == user_id,
                    LearningPathEnrollment.state == PathEnrollmentState.ACTIVE,
                )
                .order_by(LearningPathEnrollment.enrolled_at.desc())
            )
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def enroll(self, user_id: int, path: LearningPath, preserve_progress: bool = True) -> PathEnrollmentResult:
        """
        Enroll a user in a learning path.

        A dropped enrollment is reactivated in place; ``preserve_progress``
        keeps its percentage and course rows, otherwise both are rebuilt.

        Raises:
            AlreadyEnrolledError: active or completed enrollment exists
            PathNotPublishedError: path is not published
            ConfigurationError: path has an unknown prerequisite mode
        """
        existing = self.find_enrollment(user_id, path.id)
        if existing is not None and existing.state != PathEnrollmentState.DROPPED:
            raise AlreadyEnrolledError(user_id, "LearningPath", path.id)
        if not path.is_published:
            raise PathNotPublishedError(path.id)
        evaluator = self.evaluators.make(path)

        with transaction(self.session):
            if existing is not None:
                enrollment = existing
                self._reactivate(enrollment, evaluator, preserve_progress)
            else:
                enrollment = LearningPathEnrollment(
                    user_id=user_id,
                    learning_path=path,
                    learning_path_id=path.id,
                    state=PathEnrollmentState.ACTIVE,
                    progress_percentage=0.0,
                    enrolled_at=utcnow(),
                )
                self.session.add(enrollment)
                self._initialize_course_progress(enrollment, evaluator)
            self.session.flush()
            # Linked courses may already be completed outside the path
            for observer in self._observers:
                observer.path_enrollment_activated(enrollment)

            total = len(enrollment.course_progress)
            unlocked = sum(1 for row in enrollment.course_progress if row.state.can_start())
            result = PathEnrollmentResult(enrollment, existing is None, total, unlocked)

        logger.info(
            f"learning_path.enrollment.{'created' if result.is_new_enrollment else 'reactivated'}: "
            f"user={user_id} path={path.id} enrollment={enrollment.id} unlocked={unlocked}/{total}"
        )
        self.events.dispatch(
            PathEnrollmentCreated(
                enrollment_id=enrollment.id,
                user_id=user_id,
                learning_path_id=path.id,
                is_reactivation=not result.is_new_enrollment,
            )
        )
        return result

    def drop(self, enrollment: LearningPathEnrollment, reason: str | None = None) -> None:
        """Active -> Dropped. Any other state raises InvalidStateTransitionError."""
        ensure_transition(
            "LearningPathEnrollment",
            enrollment.id,
            enrollment.state,
            PathEnrollmentState.DROPPED,
            reason="Only active enrollments can be dropped",
        )

        with transaction(self.session):
            enrollment.state = PathEnrollmentState.DROPPED
            enrollment.dropped_at = utcnow()
            enrollment.drop_reason = reason

        logger.info(f"learning_path.enrollment.dropped: enrollment={enrollment.id} reason={reason}")
        self.events.dispatch(
            PathDropped(
                enrollment_id=enrollment.id,
                user_id=enrollment.user_id,
                learning_path_id=enrollment.learning_path_id,
                reason=reason,
            )
        )

    def complete(self, enrollment: LearningPathEnrollment) -> None:
        """Active -> Completed; a no-op when already completed."""
        if enrollment.state == PathEnrollmentState.COMPLETED:
            return
        ensure_transition("LearningPathEnrollment", enrollment.id, enrollment.state, PathEnrollmentState.COMPLETED)

        with transaction(self.session):
            enrollment.state = PathEnrollmentState.COMPLETED
            enrollment.completed_at = utcnow()
            enrollment.progress_percentage = 100.0
            completed_courses = sum(1 for row in enrollment.course_progress if row.state.is_completed())

        logger.info(f"learning_path.enrollment.completed: enrollment={enrollment.id} courses={completed_courses}")
        self.events.dispatch(
            PathCompleted(
                enrollment_id=enrollment.id,
                user_id=enrollment.user_id,
                learning_path_id=enrollment.learning_path_id,
                completed_courses=completed_courses,
            )
        )

    def ensure_course_enrollment(self, user_id: int, course: Course) -> Enrollment:
        """Reuse the user's active/completed course enrollment or create one."""
        return self.enrollments.ensure_enrollment(user_id, course)

    # =========================================================================
    # Internals
    # =========================================================================

    def _initialize_course_progress(self, enrollment: LearningPathEnrollment, evaluator: PrerequisiteEvaluator) -> None:
        """One row per path course: first course (or all, without prerequisites) available."""
        unlock_all = evaluator.mode is PrerequisiteMode.NONE
        now = utcnow()

        for index, path_course in enumerate(enrollment.learning_path.path_courses):
            available = unlock_all or index == 0
            row = LearningPathCourseProgress(
                course_id=path_course.course_id,
                course=path_course.course,
                position=path_course.position,
                state=CourseProgressState.AVAILABLE if available else CourseProgressState.LOCKED,
                unlocked_at=now if available else None,
            )
            if available:
                self._link_course_enrollment(row, enrollment.user_id)
            enrollment.course_progress.append(row)

    def _reactivate(
        self,
        enrollment: LearningPathEnrollment,
        evaluator: PrerequisiteEvaluator,
        preserve_progress: bool,
    ) -> None:
        ensure_transition("LearningPathEnrollment", enrollment.id, enrollment.state, PathEnrollmentState.ACTIVE)
        enrollment.state = PathEnrollmentState.ACTIVE
        enrollment.enrolled_at = utcnow()
        enrollment.dropped_at = None
        enrollment.drop_reason = None
        enrollment.completed_at = None

        if preserve_progress:
            for row in enrollment.course_progress:
                linked = row.course_enrollment
                if row.state != CourseProgressState.LOCKED and (linked is None or not linked.status.is_current):
                    self._link_course_enrollment(row, enrollment.user_id)
            return

        enrollment.course_progress.clear()
        # Deletes must hit the database before the fresh rows reuse (enrollment, course)
        self.session.flush()
        enrollment.progress_percentage = 0.0
        self._initialize_course_progress(enrollment, evaluator)

    def _link_course_enrollment(self, row: LearningPathCourseProgress, user_id: int) -> None:
        course_enrollment = self.ensure_course_enrollment(user_id, row.course)
        row.course_enrollment = course_enrollment
        row.course_enrollment_id = course_enrollment.id
