"""
Integration tests for learning path enrollment.

Runs the wired services against an in-memory SQLite database.
"""

import pytest

from factories import USER_ID, make_course, make_path
from lms_core.core.events import CourseUnlockedInPath, PathCompleted, PathDropped, PathEnrollmentCreated
from lms_core.core.exceptions import (
    AlreadyEnrolledError,
    ConfigurationError,
    InvalidStateTransitionError,
    PathNotPublishedError,
)
from lms_core.enrollment.states import EnrollmentStatus
from lms_core.learning_path.states import CourseProgressState, PathEnrollmentState
from lms_core.progress import ProgressUpdate

C = CourseProgressState


@pytest.fixture
def courses(session):
    return [make_course(session, title=f"Course {index}", lessons=2) for index in (1, 2, 3)]


@pytest.fixture
def path(session, courses):
    return make_path(session, courses)


def states(enrollment):
    return [row.state for row in enrollment.course_progress]


class TestEnroll:
    def test_sequential_path_opens_first_course_only(self, services, path, events):
        result = services.path_enrollments.enroll(USER_ID, path)
        enrollment = result.enrollment

        assert result.is_new_enrollment
        assert result.total_courses == 3
        assert result.unlocked_courses == 1
        assert result.message == "Enrolled with 1/3 courses available"
        assert enrollment.state == PathEnrollmentState.ACTIVE
        assert enrollment.progress_percentage == 0.0
        assert states(enrollment) == [C.AVAILABLE, C.LOCKED, C.LOCKED]
        assert [row.position for row in enrollment.course_progress] == [0, 1, 2]

        first, *rest = enrollment.course_progress
        assert first.unlocked_at is not None
        assert first.course_enrollment.status == EnrollmentStatus.ACTIVE
        assert all(row.course_enrollment_id is None for row in rest)

        [created] = events.of_type(PathEnrollmentCreated)
        assert created.enrollment_id == enrollment.id
        assert created.is_reactivation is False

    def test_mode_none_opens_every_course(self, services, session, courses):
        path = make_path(session, courses, mode="none")

        result = services.path_enrollments.enroll(USER_ID, path)

        assert result.unlocked_courses == 3
        assert states(result.enrollment) == [C.AVAILABLE] * 3
        assert all(row.course_enrollment_id is not None for row in result.enrollment.course_progress)

    def test_reuses_existing_course_enrollment(self, services, path, courses):
        existing = services.enrollments.enroll(USER_ID, courses[0])

        result = services.path_enrollments.enroll(USER_ID, path)

        assert result.enrollment.course_progress[0].course_enrollment_id == existing.id

    def test_course_finished_before_joining_counts(self, services, path, courses, events):
        services.enrollments.complete(services.enrollments.enroll(USER_ID, courses[0]))

        result = services.path_enrollments.enroll(USER_ID, path)
        enrollment = result.enrollment

        assert states(enrollment) == [C.COMPLETED, C.AVAILABLE, C.LOCKED]
        assert enrollment.course_progress[0].completed_at is not None
        assert enrollment.progress_percentage == 33.3
        assert result.unlocked_courses == 2
        [unlocked] = events.of_type(CourseUnlockedInPath)
        assert unlocked.position == 1

    def test_every_course_finished_before_joining_completes_path(self, services, session, courses, events):
        path = make_path(session, courses, mode="none", title="Review path")
        for course in courses:
            services.enrollments.complete(services.enrollments.enroll(USER_ID, course))

        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment

        assert states(enrollment) == [C.COMPLETED] * 3
        assert enrollment.state == PathEnrollmentState.COMPLETED
        assert enrollment.progress_percentage == 100.0
        assert len(events.of_type(PathCompleted)) == 1

    def test_already_enrolled(self, services, path):
        services.path_enrollments.enroll(USER_ID, path)

        with pytest.raises(AlreadyEnrolledError):
            services.path_enrollments.enroll(USER_ID, path)

    def test_unpublished_path(self, services, session, courses):
        path = make_path(session, courses, published=False)

        with pytest.raises(PathNotPublishedError):
            services.path_enrollments.enroll(USER_ID, path)
        assert not services.path_enrollments.is_enrolled(USER_ID, path.id)

    def test_unknown_prerequisite_mode_writes_nothing(self, services, session, courses):
        path = make_path(session, courses, mode="skill_based")

        with pytest.raises(ConfigurationError):
            services.path_enrollments.enroll(USER_ID, path)
        assert services.path_enrollments.find_enrollment(USER_ID, path.id) is None
        assert services.enrollments.find_enrollment(USER_ID, courses[0].id) is None

    def test_can_enroll(self, services, path):
        assert services.path_enrollments.can_enroll(USER_ID, path)
        services.path_enrollments.enroll(USER_ID, path)
        assert not services.path_enrollments.can_enroll(USER_ID, path)
        assert [e.learning_path_id for e in services.path_enrollments.get_active_enrollments(USER_ID)] == [path.id]


class TestDropAndReactivate:
    def test_drop(self, services, path, events):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment

        services.path_enrollments.drop(enrollment, reason="Too busy")

        assert enrollment.state == PathEnrollmentState.DROPPED
        assert enrollment.dropped_at is not None
        assert enrollment.drop_reason == "Too busy"
        assert services.path_enrollments.get_active_enrollment(USER_ID, path.id) is None
        [dropped] = events.of_type(PathDropped)
        assert dropped.reason == "Too busy"

    def test_only_active_enrollments_can_be_dropped(self, services, path):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        services.path_enrollments.drop(enrollment)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            services.path_enrollments.drop(enrollment)
        assert exc_info.value.reason == "Only active enrollments can be dropped"

    def test_reactivation_preserves_progress(self, services, path, events):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        services.enrollments.complete(enrollment.course_progress[0].course_enrollment)
        services.path_enrollments.drop(enrollment)

        result = services.path_enrollments.enroll(USER_ID, path)

        assert not result.is_new_enrollment
        assert result.message == "Enrollment reactivated"
        assert result.enrollment.id == enrollment.id
        assert result.enrollment.state == PathEnrollmentState.ACTIVE
        assert result.enrollment.dropped_at is None
        assert result.enrollment.progress_percentage == 33.3
        assert states(result.enrollment) == [C.COMPLETED, C.AVAILABLE, C.LOCKED]
        assert events.of_type(PathEnrollmentCreated)[-1].is_reactivation is True

    def test_reactivation_can_reset_progress(self, services, path, courses):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        first = enrollment.course_progress[0]
        services.tracking.update_progress(
            ProgressUpdate(enrollment_id=first.course_enrollment_id, lesson_id=courses[0].lessons[0].id, current_page=1)
        )
        assert first.state == C.IN_PROGRESS
        services.path_enrollments.drop(enrollment)

        result = services.path_enrollments.enroll(USER_ID, path, preserve_progress=False)

        assert result.enrollment.progress_percentage == 0.0
        assert states(result.enrollment) == [C.AVAILABLE, C.LOCKED, C.LOCKED]
        assert all(row.started_at is None for row in result.enrollment.course_progress)

    def test_reset_keeps_courses_that_stay_completed(self, services, path):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        services.enrollments.complete(enrollment.course_progress[0].course_enrollment)
        services.path_enrollments.drop(enrollment)

        result = services.path_enrollments.enroll(USER_ID, path, preserve_progress=False)

        assert states(result.enrollment) == [C.COMPLETED, C.AVAILABLE, C.LOCKED]
        assert result.enrollment.progress_percentage == 33.3

    def test_reactivation_applies_completion_made_while_dropped(self, services, path):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        course_enrollment = enrollment.course_progress[0].course_enrollment
        services.path_enrollments.drop(enrollment)
        services.enrollments.complete(course_enrollment)
        assert states(enrollment) == [C.AVAILABLE, C.LOCKED, C.LOCKED]

        services.path_enrollments.enroll(USER_ID, path)

        assert states(enrollment) == [C.COMPLETED, C.AVAILABLE, C.LOCKED]
        assert enrollment.course_progress[1].course_enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.progress_percentage == 33.3

    def test_dropped_path_ignores_course_completion(self, services, path, courses):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        course_enrollment = enrollment.course_progress[0].course_enrollment
        services.path_enrollments.drop(enrollment)

        services.enrollments.complete(course_enrollment)

        assert course_enrollment.status == EnrollmentStatus.COMPLETED
        assert states(enrollment) == [C.AVAILABLE, C.LOCKED, C.LOCKED]
        assert enrollment.progress_percentage == 0.0


class TestComplete:
    def test_complete_is_idempotent(self, services, path, events):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        services.path_enrollments.complete(enrollment)
        completed_at = enrollment.completed_at

        services.path_enrollments.complete(enrollment)

        assert enrollment.state == PathEnrollmentState.COMPLETED
        assert enrollment.completed_at == completed_at
        assert enrollment.progress_percentage == 100.0
        assert len(events.of_type(PathCompleted)) == 1

    def test_dropped_path_cannot_be_completed(self, services, path):
        enrollment = services.path_enrollments.enroll(USER_ID, path).enrollment
        services.path_enrollments.drop(enrollment)

        with pytest.raises(InvalidStateTransitionError):
            services.path_enrollments.complete(enrollment)
