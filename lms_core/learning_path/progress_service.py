"""
Learning path progress service.

Drives the per-course state machine inside a path enrollment:

- unlocking cascade: re-evaluate locked courses (in position order) and
  open every course whose prerequisites are now met
- completion: mark a course completed, unlock, recompute the path
  percentage and complete the path - all in one unit of work
- drop-cascade: a dropped course enrollment reverts its completed course
  row to available and reopens a completed path

Also observes course-level enrollments (CourseEnrollmentObserver) so that
starting, completing or dropping a course propagates into every path that
links to it. As a PathEnrollmentObserver it completes rows linked to
courses finished before the path was (re)joined.
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from lms_core.core.clock import utcnow
from lms_core.core.events import CourseUnlockedInPath, EventDispatcher, PathProgressUpdated
from lms_core.core.exceptions import CourseNotInPathError, PrerequisitesNotMetError
from lms_core.db.database import transaction
from lms_core.db.models import Course, Enrollment, LearningPathCourseProgress, LearningPathEnrollment
from lms_core.enrollment.states import EnrollmentStatus
from lms_core.progress.calculators import LessonBasedProgressCalculator
from lms_core.progress.factory import ProgressCalculatorFactory

from .enrollment_service import PathEnrollmentService
from .prerequisites import PrerequisiteCheckResult, PrerequisiteEvaluatorFactory
from .schemas import CourseProgressItem, PathProgressResult
from .states import CourseProgressState, PathEnrollmentState, ensure_transition


class PathProgressService:
    def __init__(
        self,
        session: Session,
        evaluators: PrerequisiteEvaluatorFactory,
        calculators: ProgressCalculatorFactory,
        path_enrollments: PathEnrollmentService,
        events: EventDispatcher | None = None,
    ):
        self.session = session
        self.evaluators = evaluators
        self.calculator: LessonBasedProgressCalculator = calculators.lesson_based
        self.path_enrollments = path_enrollments
        self.events = events or EventDispatcher()

    # =========================================================================
    # Read side
    # =========================================================================

    def get_progress(self, enrollment: LearningPathEnrollment) -> PathProgressResult:
        path = enrollment.learning_path
        evaluator = self.evaluators.make(path)

        items: list[CourseProgressItem] = []
        for row in enrollment.course_progress:
            path_course = path.path_course_for(row.course_id)
            lock_reason = None
            if row.state == CourseProgressState.LOCKED:
                check = evaluator.evaluate(enrollment, row.course)
                lock_reason = None if check.is_met else check.reason

            items.append(
                CourseProgressItem(
                    course_id=row.course_id,
                    title=row.course.title,
                    state=row.state,
                    position=row.position,
                    is_required=bool(path_course.is_required) if path_course else False,
                    completion_percentage=row.course_enrollment.progress_percentage if row.course_enrollment else 0.0,
                    min_required_percentage=path_course.min_completion_percentage if path_course else None,
                    prerequisites=path_course.prerequisites if path_course else None,
                    lock_reason=lock_reason,
                    unlocked_at=row.unlocked_at,
                    started_at=row.started_at,
                    completed_at=row.completed_at,
                )
            )

        required_ids = {pc.course_id for pc in path.path_courses if pc.is_required}
        counted = [item for item in items if not required_ids or item.course_id in required_ids]

        def count(state: CourseProgressState) -> int:
            return sum(1 for item in items if item.state == state)

        return PathProgressResult(
            path_enrollment_id=enrollment.id,
            overall_percentage=enrollment.progress_percentage or 0.0,
            total_courses=len(items),
            completed_courses=count(CourseProgressState.COMPLETED),
            in_progress_courses=count(CourseProgressState.IN_PROGRESS),
            locked_courses=count(CourseProgressState.LOCKED),
            available_courses=count(CourseProgressState.AVAILABLE),
            courses=items,
            is_completed=enrollment.state == PathEnrollmentState.COMPLETED,
            required_courses=len(counted),
            completed_required_courses=sum(1 for item in counted if item.state.is_completed()),
            required_percentage=self.calculate_progress_percentage(enrollment),
        )

    def calculate_progress_percentage(self, enrollment: LearningPathEnrollment) -> float:
        return self.calculator.calculate_path_progress(enrollment)

    def check_prerequisites(self, enrollment: LearningPathEnrollment, course: Course) -> PrerequisiteCheckResult:
        return self.evaluators.make(enrollment.learning_path).evaluate(enrollment, course)

    def is_course_unlocked(self, enrollment: LearningPathEnrollment, course: Course) -> bool:
        row = enrollment.progress_for(course.id)
        return row is not None and row.state.can_start()

    def validate_course_in_path(self, enrollment: LearningPathEnrollment, course: Course) -> LearningPathCourseProgress:
        row = enrollment.progress_for(course.id)
        if row is None:
            raise CourseNotInPathError(course.id, enrollment.learning_path_id)
        return row

    def validate_prerequisites(self, enrollment: LearningPathEnrollment, course: Course) -> None:
        check = self.check_prerequisites(enrollment, course)
        if not check.is_met:
            raise PrerequisitesNotMetError(course.id, check.missing_prerequisites, check.reason)

    # =========================================================================
    # Unlocking cascade
    # =========================================================================

    def unlock_next_courses(self, enrollment: LearningPathEnrollment) -> list[Course]:
        """
        Open every locked course whose prerequisites are met.

        Rows are visited in position order so a course opened (or found
        already completed) early in the pass can satisfy later rows.
        Returns the newly unlocked courses; a second call with no completion
        in between returns [].
        """
        if not enrollment.state.can_unlock_courses():
            return []

        previous_percentage = enrollment.progress_percentage or 0.0
        with transaction(self.session):
            unlocked, completed_on_unlock = self._unlock(enrollment)
            if completed_on_unlock:
                self._refresh_path(enrollment, previous_percentage, course_id=None)
        return [row.course for row in unlocked]

    def on_course_completed(self, enrollment: LearningPathEnrollment, course_enrollment: Enrollment) -> None:
        """
        Apply a course completion to a path enrollment.

        Marks the row completed (idempotent), runs the unlocking cascade,
        recomputes the percentage and completes the path when every
        required course is done - atomically.
        """
        row = self.validate_course_in_path(enrollment, course_enrollment.course)
        if not enrollment.state.can_track_progress():
            logger.debug(f"Path enrollment {enrollment.id} is {enrollment.state.value}; completion ignored")
            return
        if row.state == CourseProgressState.LOCKED:
            # Picked up by the unlocking cascade once prerequisites are met
            logger.info(f"Course {row.course_id} completed while locked in path enrollment {enrollment.id}")
            return

        previous_percentage = enrollment.progress_percentage or 0.0
        with transaction(self.session):
            if not row.state.is_completed():
                self._mark_completed(row, course_enrollment)
            self._unlock(enrollment)
            self._refresh_path(enrollment, previous_percentage, course_id=row.course_id)

    def sync_completed_courses(self, enrollment: LearningPathEnrollment) -> list[Course]:
        """
        Complete open rows whose linked course enrollment is already completed.

        Rows linked at enrollment or reactivation can point at a course the
        learner finished before joining the path; no completion will fire
        for it again. Runs the unlocking cascade and recomputes the path.
        Returns the courses completed by this call.
        """
        if not enrollment.state.can_track_progress():
            return []
        finished = [
            row
            for row in sorted(enrollment.course_progress, key=lambda r: r.position)
            if row.state in (CourseProgressState.AVAILABLE, CourseProgressState.IN_PROGRESS)
            and row.course_enrollment is not None
            and row.course_enrollment.status == EnrollmentStatus.COMPLETED
        ]
        if not finished:
            return []

        previous_percentage = enrollment.progress_percentage or 0.0
        with transaction(self.session):
            for row in finished:
                self._mark_completed(row, row.course_enrollment)
                logger.info(
                    f"learning_path.course.completed_on_link: enrollment={enrollment.id} course={row.course_id}"
                )
            self._unlock(enrollment)
            self._refresh_path(enrollment, previous_percentage, course_id=None)
        return [row.course for row in finished]

    def start_course(self, enrollment: LearningPathEnrollment, course: Course) -> None:
        """Available -> InProgress; no-op once started or completed."""
        row = self.validate_course_in_path(enrollment, course)
        if row.state in (CourseProgressState.IN_PROGRESS, CourseProgressState.COMPLETED):
            return
        ensure_transition(
            "LearningPathCourseProgress",
            row.id,
            row.state,
            CourseProgressState.IN_PROGRESS,
            reason="Course is locked",
        )

        with transaction(self.session):
            row.state = CourseProgressState.IN_PROGRESS
            row.started_at = utcnow()
        logger.info(f"learning_path.course.started: enrollment={enrollment.id} course={row.course_id}")

    # =========================================================================
    # Course enrollment observer
    # =========================================================================

    def course_enrollment_started(self, enrollment: Enrollment) -> None:
        for row in self._rows_linked_to(enrollment):
            if row.state == CourseProgressState.AVAILABLE and row.path_enrollment.state.can_track_progress():
                self.start_course(row.path_enrollment, row.course)

    def course_enrollment_completed(self, enrollment: Enrollment) -> None:
        for row in self._rows_linked_to(enrollment):
            if row.path_enrollment.state.can_track_progress():
                self.on_course_completed(row.path_enrollment, enrollment)

    def course_enrollment_dropped(self, enrollment: Enrollment) -> None:
        """Drop-cascade: completed rows go back to available; completed paths reopen."""
        for row in self._rows_linked_to(enrollment):
            path_enrollment = row.path_enrollment
            if path_enrollment.state == PathEnrollmentState.DROPPED:
                continue

            previous_percentage = path_enrollment.progress_percentage or 0.0
            with transaction(self.session):
                if row.state == CourseProgressState.COMPLETED:
                    ensure_transition(
                        "LearningPathCourseProgress",
                        row.id,
                        row.state,
                        CourseProgressState.AVAILABLE,
                        allow_regression=True,
                    )
                    row.state = CourseProgressState.AVAILABLE
                    row.completed_at = None

                new_percentage = self.calculate_progress_percentage(path_enrollment)
                path_enrollment.progress_percentage = new_percentage

                if path_enrollment.state == PathEnrollmentState.COMPLETED:
                    ensure_transition(
                        "LearningPathEnrollment",
                        path_enrollment.id,
                        path_enrollment.state,
                        PathEnrollmentState.ACTIVE,
                        allow_regression=True,
                    )
                    path_enrollment.state = PathEnrollmentState.ACTIVE
                    path_enrollment.completed_at = None
                    logger.info(f"learning_path.enrollment.reopened: enrollment={path_enrollment.id}")

            if new_percentage != previous_percentage:
                self.events.dispatch(
                    PathProgressUpdated(
                        enrollment_id=path_enrollment.id,
                        previous_percentage=previous_percentage,
                        new_percentage=new_percentage,
                        course_id=row.course_id,
                    )
                )

    # =========================================================================
    # Path enrollment observer
    # =========================================================================

    def path_enrollment_activated(self, enrollment: LearningPathEnrollment) -> None:
        self.sync_completed_courses(enrollment)

    # =========================================================================
    # Internals
    # =========================================================================

    def _rows_linked_to(self, enrollment: Enrollment) -> list[LearningPathCourseProgress]:
        return list(
            self.session.scalars(
                select(LearningPathCourseProgress).where(
                    LearningPathCourseProgress.course_enrollment_id == enrollment.id
                )
            )
        )

    def _unlock(self, enrollment: LearningPathEnrollment) -> tuple[list[LearningPathCourseProgress], bool]:
        """One unlocking pass. Returns (unlocked rows, whether any was already completed)."""
        evaluator = self.evaluators.make(enrollment.learning_path)

        unlocked: list[LearningPathCourseProgress] = []
        completed_on_unlock = False
        locked = [row for row in enrollment.course_progress if row.state == CourseProgressState.LOCKED]
        for row in sorted(locked, key=lambda r: r.position):
            if not evaluator.evaluate(enrollment, row.course).is_met:
                continue

            ensure_transition("LearningPathCourseProgress", row.id, row.state, CourseProgressState.AVAILABLE)
            row.state = CourseProgressState.AVAILABLE
            row.unlocked_at = utcnow()
            course_enrollment = self.path_enrollments.ensure_course_enrollment(enrollment.user_id, row.course)
            row.course_enrollment = course_enrollment
            row.course_enrollment_id = course_enrollment.id
            unlocked.append(row)

            # Learner already finished this course outside the path
            if course_enrollment.status == EnrollmentStatus.COMPLETED:
                self._mark_completed(row, course_enrollment)
                completed_on_unlock = True

        self.session.flush()
        for row in unlocked:
            logger.info(
                f"learning_path.course.unlocked: enrollment={enrollment.id} course={row.course_id} position={row.position}"
            )
            self.events.dispatch(
                CourseUnlockedInPath(
                    enrollment_id=enrollment.id,
                    course_id=row.course_id,
                    position=row.position,
                    course_enrollment_id=row.course_enrollment_id,
                )
            )
        return unlocked, completed_on_unlock

    @staticmethod
    def _mark_completed(row: LearningPathCourseProgress, course_enrollment: Enrollment) -> None:
        ensure_transition("LearningPathCourseProgress", row.id, row.state, CourseProgressState.COMPLETED)
        row.state = CourseProgressState.COMPLETED
        row.completed_at = utcnow()
        if row.course_enrollment_id is None:
            row.course_enrollment = course_enrollment
            row.course_enrollment_id = course_enrollment.id

    def _refresh_path(
        self,
        enrollment: LearningPathEnrollment,
        previous_percentage: float,
        course_id: int | None,
    ) -> None:
        """Recompute the percentage, report a change, complete the path when done."""
        new_percentage = self.calculate_progress_percentage(enrollment)
        enrollment.progress_percentage = new_percentage

        if new_percentage != previous_percentage:
            logger.info(
                f"learning_path.progress.updated: enrollment={enrollment.id} {previous_percentage}% -> {new_percentage}%"
            )
            self.events.dispatch(
                PathProgressUpdated(
                    enrollment_id=enrollment.id,
                    previous_percentage=previous_percentage,
                    new_percentage=new_percentage,
                    course_id=course_id,
                )
            )

        if enrollment.state == PathEnrollmentState.ACTIVE and self.calculator.is_path_complete(enrollment):
            self.path_enrollments.complete(enrollment)
