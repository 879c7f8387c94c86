"""
Service wiring.

Builds every domain service around one Session so that they share a unit
of work, and registers the path progress service as the course enrollment
observer.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from config import Settings, get_settings
from lms_core.assessment.submission import AssessmentSubmissionService
from lms_core.core.events import EventDispatcher
from lms_core.enrollment.service import EnrollmentService
from lms_core.grading import GradingStrategyResolver
from lms_core.learning_path.enrollment_service import PathEnrollmentService
from lms_core.learning_path.prerequisites import PrerequisiteEvaluatorFactory
from lms_core.learning_path.progress_service import PathProgressService
from lms_core.progress import ProgressCalculatorFactory, ProgressTrackingService


@dataclass
class LmsServices:
    session: Session
    events: EventDispatcher
    calculators: ProgressCalculatorFactory
    evaluators: PrerequisiteEvaluatorFactory
    resolver: GradingStrategyResolver
    enrollments: EnrollmentService
    path_enrollments: PathEnrollmentService
    path_progress: PathProgressService
    tracking: ProgressTrackingService
    submissions: AssessmentSubmissionService


def build_services(
    session: Session,
    settings: Settings | None = None,
    events: EventDispatcher | None = None,
) -> LmsServices:
    settings = settings or get_settings()
    events = events or EventDispatcher()

    calculators = ProgressCalculatorFactory(
        settings.progress_calculator,
        lesson_weight=settings.lesson_weight,
        assessment_weight=settings.assessment_weight,
    )
    evaluators = PrerequisiteEvaluatorFactory(settings.default_prerequisite_mode)
    resolver = GradingStrategyResolver.from_settings(settings)

    enrollments = EnrollmentService(session, events)
    path_enrollments = PathEnrollmentService(session, evaluators, enrollments, events)
    path_progress = PathProgressService(session, evaluators, calculators, path_enrollments, events)
    enrollments.add_observer(path_progress)
    path_enrollments.add_observer(path_progress)

    tracking = ProgressTrackingService(
        session,
        calculators,
        enrollments,
        events,
        media_completion_threshold=settings.media_completion_threshold,
        page_completion_threshold=settings.page_completion_threshold,
    )
    submissions = AssessmentSubmissionService(
        session,
        resolver,
        default_passing_score=settings.default_passing_score,
        default_max_attempts=settings.default_max_attempts,
    )

    return LmsServices(
        session=session,
        events=events,
        calculators=calculators,
        evaluators=evaluators,
        resolver=resolver,
        enrollments=enrollments,
        path_enrollments=path_enrollments,
        path_progress=path_progress,
        tracking=tracking,
        submissions=submissions,
    )
