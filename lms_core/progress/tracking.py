"""
Lesson progress tracking.

Applies page/media progress pings to LessonProgress rows, auto-completes
lessons past their thresholds and cascades completions into the course
enrollment's percentage (and from there into learning paths).
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from lms_core.core.clock import utcnow
from lms_core.core.events import EventDispatcher, LessonCompleted, LessonDeleted, ProgressUpdated
from lms_core.core.exceptions import EntityNotFoundError, LessonNotInCourseError, PreconditionError
from lms_core.db.database import transaction
from lms_core.db.models import Enrollment, Lesson, LessonProgress
from lms_core.enrollment.service import EnrollmentService
from lms_core.enrollment.states import EnrollmentStatus

from .calculators import AssessmentInclusiveProgressCalculator, AssessmentStats
from .factory import ProgressCalculatorFactory
from .schemas import ProgressResult, ProgressUpdate


class ProgressTrackingService:
    def __init__(
        self,
        session: Session,
        calculators: ProgressCalculatorFactory,
        enrollments: EnrollmentService,
        events: EventDispatcher | None = None,
        media_completion_threshold: float = 90.0,
        page_completion_threshold: float = 100.0,
    ):
        self.session = session
        self.calculators = calculators
        self.enrollments = enrollments
        self.events = events or EventDispatcher()
        self.media_completion_threshold = media_completion_threshold
        self.page_completion_threshold = page_completion_threshold

    # =========================================================================
    # Progress updates
    # =========================================================================

    def update_progress(self, update: ProgressUpdate) -> ProgressResult:
        """Apply one page or media update and cascade a fresh lesson completion."""
        enrollment = self._get(Enrollment, update.enrollment_id)
        lesson = self._get(Lesson, update.lesson_id)
        self._validate(enrollment, lesson)

        previous_percentage = enrollment.progress_percentage or 0.0

        with transaction(self.session):
            progress = self._get_or_create_progress(enrollment, lesson)
            was_completed = bool(progress.is_completed)

            if update.is_page_progress:
                self._apply_page_update(progress, update.current_page, update.total_pages, update.metadata)
            elif update.is_media_progress:
                self._apply_media_update(progress, update.media_position_seconds, update.media_duration_seconds)

            progress.time_spent_seconds = (progress.time_spent_seconds or 0) + update.time_spent_seconds
            progress.last_viewed_at = utcnow()
            enrollment.last_lesson_id = lesson.id
            self.enrollments.mark_started(enrollment)
            self.session.flush()

            lesson_completed = progress.is_completed and not was_completed
            if lesson_completed:
                self._on_lesson_completed(enrollment, progress)

            result = self._result(enrollment, progress, lesson_completed)

        self.events.dispatch(
            ProgressUpdated(
                enrollment_id=enrollment.id,
                lesson_id=lesson.id,
                previous_percentage=previous_percentage,
                new_percentage=result.course_percentage,
            )
        )
        return result

    def complete_lesson(self, enrollment: Enrollment, lesson: Lesson) -> ProgressResult:
        """Force-complete a lesson. No-op (nothing written) if already completed."""
        self._validate(enrollment, lesson)

        progress = self._find_progress(enrollment.id, lesson.id)
        if progress is not None and progress.is_completed:
            return self._result(enrollment, progress, lesson_completed=False)

        with transaction(self.session):
            progress = progress or self._get_or_create_progress(enrollment, lesson)
            self._mark_completed(progress)
            progress.last_viewed_at = utcnow()
            enrollment.last_lesson_id = lesson.id
            self.enrollments.mark_started(enrollment)
            self.session.flush()

            self._on_lesson_completed(enrollment, progress)
            result = self._result(enrollment, progress, lesson_completed=True)

        return result

    def recalculate_course_progress(self, enrollment: Enrollment) -> float:
        """
        Recompute the enrollment percentage with the course's calculator.

        Completes an active enrollment the calculator reports as complete,
        which in turn advances any learning path containing the course.
        """
        calculator = self.calculators.for_course(enrollment.course)

        with transaction(self.session):
            percentage = calculator.calculate(enrollment)
            enrollment.progress_percentage = percentage
            if enrollment.status == EnrollmentStatus.ACTIVE and calculator.is_complete(enrollment):
                self.enrollments.complete(enrollment)

        logger.debug(f"Enrollment {enrollment.id} progress recalculated with {calculator.name}: {percentage}%")
        return enrollment.progress_percentage

    def delete_lesson(self, lesson: Lesson) -> list[Enrollment]:
        """
        Soft-delete a lesson and recompute every active enrollment of its course.

        Calculators already ignore deleted lessons; the stored percentages are
        refreshed here, so deleting the last unfinished lesson completes the
        enrollment (and advances its paths). Deleting twice is a no-op.
        Returns the recalculated enrollments.
        """
        if lesson.is_deleted:
            return []

        with transaction(self.session):
            lesson.deleted_at = utcnow()
            self.session.flush()
            active = list(
                self.session.scalars(
                    select(Enrollment).where(
                        Enrollment.course_id == lesson.course_id, Enrollment.status == EnrollmentStatus.ACTIVE
                    )
                )
            )
            for enrollment in active:
                self.recalculate_course_progress(enrollment)

        logger.info(f"Lesson {lesson.id} deleted from course {lesson.course_id}; {len(active)} enrollment(s) recalculated")
        self.events.dispatch(
            LessonDeleted(
                lesson_id=lesson.id,
                course_id=lesson.course_id,
                lesson_title=lesson.title,
                recalculated_enrollments=len(active),
            )
        )
        return active

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply_page_update(
        self,
        progress: LessonProgress,
        current_page: int,
        total_pages: int | None,
        metadata: dict[str, Any] | None,
    ) -> None:
        progress.current_page = current_page
        if total_pages is not None:
            progress.total_pages = total_pages
        progress.highest_page_reached = max(progress.highest_page_reached or 1, current_page)
        if metadata:
            progress.progress_metadata = {**(progress.progress_metadata or {}), **metadata}

        if progress.total_pages:
            reached = progress.highest_page_reached / progress.total_pages * 100
            if reached >= self.page_completion_threshold:
                self._mark_completed(progress)

    def _apply_media_update(self, progress: LessonProgress, position: float, duration: float) -> None:
        progress.media_position_seconds = position
        progress.media_duration_seconds = duration
        if duration <= 0:
            return

        watched = position / duration * 100
        progress.media_progress_percentage = min(100.0, round(watched, 2))
        if watched >= self.media_completion_threshold:
            self._mark_completed(progress)

    @staticmethod
    def _mark_completed(progress: LessonProgress) -> None:
        if not progress.is_completed:
            progress.is_completed = True
            progress.completed_at = utcnow()

    def _on_lesson_completed(self, enrollment: Enrollment, progress: LessonProgress) -> None:
        logger.info(f"Lesson {progress.lesson_id} completed in enrollment {enrollment.id}")
        self.events.dispatch(
            LessonCompleted(
                lesson_progress_id=progress.id,
                enrollment_id=enrollment.id,
                lesson_id=progress.lesson_id,
                user_id=enrollment.user_id,
            )
        )
        self.recalculate_course_progress(enrollment)

    def _result(self, enrollment: Enrollment, progress: LessonProgress, lesson_completed: bool) -> ProgressResult:
        return ProgressResult(
            progress=progress,
            course_percentage=enrollment.progress_percentage or 0.0,
            lesson_completed=lesson_completed,
            course_completed=enrollment.status == EnrollmentStatus.COMPLETED,
            assessment_stats=self._assessment_stats(enrollment),
        )

    def _assessment_stats(self, enrollment: Enrollment) -> AssessmentStats | None:
        calculator = self.calculators.for_course(enrollment.course)
        if isinstance(calculator, AssessmentInclusiveProgressCalculator):
            return calculator.assessment_stats(enrollment)
        return None

    def _validate(self, enrollment: Enrollment, lesson: Lesson) -> None:
        if lesson.course_id != enrollment.course_id or lesson.is_deleted:
            raise LessonNotInCourseError(lesson.id, enrollment.course_id)
        if not enrollment.status.can_track_progress:
            raise PreconditionError(
                f"Enrollment {enrollment.id} is {enrollment.status.value}; progress is not tracked",
                enrollment_id=enrollment.id,
            )

    def _find_progress(self, enrollment_id: int, lesson_id: int) -> LessonProgress | None:
        return self.session.scalars(
            select(LessonProgress).where(
                LessonProgress.enrollment_id == enrollment_id, LessonProgress.lesson_id == lesson_id
            )
        ).first()

    def _get_or_create_progress(self, enrollment: Enrollment, lesson: Lesson) -> LessonProgress:
        progress = self._find_progress(enrollment.id, lesson.id)
        if progress is None:
            progress = LessonProgress(
                enrollment=enrollment,
                lesson=lesson,
                current_page=1,
                highest_page_reached=1,
                time_spent_seconds=0,
                is_completed=False,
            )
            self.session.add(progress)
        return progress

    def _get(self, model: type, model_id: int) -> Any:
        instance = self.session.get(model, model_id)
        if instance is None:
            raise EntityNotFoundError(model.__name__, model_id)
        return instance
