"""
Integration tests for course-level enrollments.
"""

import pytest

from factories import USER_ID, make_course
from lms_core.core.events import CourseEnrollmentCompleted, CourseEnrollmentDropped
from lms_core.core.exceptions import AlreadyEnrolledError, CourseNotPublishedError, InvalidStateTransitionError
from lms_core.enrollment.states import EnrollmentStatus


@pytest.fixture
def course(session):
    return make_course(session, title="Algorithms", lessons=2)


class TestEnrollmentService:
    def test_enroll(self, services, course):
        enrollment = services.enrollments.enroll(USER_ID, course)

        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.progress_percentage == 0.0
        assert enrollment.enrolled_at is not None
        assert services.enrollments.get_active_enrollment(USER_ID, course.id).id == enrollment.id
        assert not services.enrollments.can_enroll(USER_ID, course)

    def test_already_enrolled(self, services, course):
        services.enrollments.enroll(USER_ID, course)

        with pytest.raises(AlreadyEnrolledError):
            services.enrollments.enroll(USER_ID, course)

    def test_unpublished_course(self, services, session):
        draft = make_course(session, title="Draft", published=False)

        with pytest.raises(CourseNotPublishedError):
            services.enrollments.enroll(USER_ID, draft)
        assert not services.enrollments.can_enroll(USER_ID, draft)

    def test_complete_is_idempotent(self, services, course, events):
        enrollment = services.enrollments.enroll(USER_ID, course)

        services.enrollments.complete(enrollment)
        services.enrollments.complete(enrollment)

        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.progress_percentage == 100.0
        assert len(events.of_type(CourseEnrollmentCompleted)) == 1

    def test_drop_completed_enrollment(self, services, course, events):
        enrollment = services.enrollments.enroll(USER_ID, course)
        services.enrollments.complete(enrollment)

        services.enrollments.drop(enrollment, reason="Retaking later")

        assert enrollment.status == EnrollmentStatus.DROPPED
        assert enrollment.drop_reason == "Retaking later"
        [dropped] = events.of_type(CourseEnrollmentDropped)
        assert dropped.reason == "Retaking later"
        assert services.enrollments.get_active_enrollment(USER_ID, course.id) is None

    def test_dropped_enrollment_cannot_be_dropped_again(self, services, course):
        enrollment = services.enrollments.enroll(USER_ID, course)
        services.enrollments.drop(enrollment)

        with pytest.raises(InvalidStateTransitionError):
            services.enrollments.drop(enrollment)

    def test_reactivation_preserves_progress(self, services, course):
        enrollment = services.enrollments.enroll(USER_ID, course)
        services.tracking.complete_lesson(enrollment, course.lessons[0])
        services.enrollments.drop(enrollment)

        again = services.enrollments.enroll(USER_ID, course)

        assert again.id == enrollment.id
        assert again.status == EnrollmentStatus.ACTIVE
        assert again.progress_percentage == 50.0
        assert again.started_at is not None

    def test_reactivation_can_reset_progress(self, services, course):
        enrollment = services.enrollments.enroll(USER_ID, course)
        services.tracking.complete_lesson(enrollment, course.lessons[0])
        services.enrollments.drop(enrollment)

        again = services.enrollments.enroll(USER_ID, course, preserve_progress=False)

        assert again.progress_percentage == 0.0
        assert again.started_at is None
        assert again.last_lesson_id is None
