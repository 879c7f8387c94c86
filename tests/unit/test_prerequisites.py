"""
Unit tests for prerequisite evaluators and the evaluator factory.
"""

import pytest

from factories import USER_ID
from lms_core.core.exceptions import ConfigurationError
from lms_core.db.models import (
    Course,
    LearningPath,
    LearningPathCourse,
    LearningPathCourseProgress,
    LearningPathEnrollment,
)
from lms_core.learning_path.prerequisites import (
    ImmediatePreviousEvaluator,
    NoPrerequisiteEvaluator,
    PrerequisiteEvaluatorFactory,
    SequentialEvaluator,
)
from lms_core.learning_path.states import CourseProgressState

C = CourseProgressState


def path_enrollment(*states, mode="sequential"):
    path = LearningPath(id=1, title="Path", is_published=True, prerequisite_mode=mode)
    enrollment = LearningPathEnrollment(id=1, user_id=USER_ID, learning_path=path)
    courses = []
    for index, state in enumerate(states):
        course = Course(id=index + 1, title=f"Course {index + 1}")
        courses.append(course)
        path.path_courses.append(LearningPathCourse(course_id=course.id, course=course, position=index))
        enrollment.course_progress.append(
            LearningPathCourseProgress(course_id=course.id, course=course, position=index, state=state)
        )
    return enrollment, courses


class TestSequentialEvaluator:
    evaluator = SequentialEvaluator()

    def test_first_course_is_always_met(self):
        enrollment, courses = path_enrollment(C.AVAILABLE, C.LOCKED)

        assert self.evaluator.evaluate(enrollment, courses[0]).is_met

    def test_all_previous_must_be_completed(self):
        enrollment, courses = path_enrollment(C.COMPLETED, C.IN_PROGRESS, C.LOCKED)

        result = self.evaluator.evaluate(enrollment, courses[2])

        assert not result.is_met
        assert result.reason == "Previous courses must be completed"
        assert result.missing_titles() == ["Course 2"]
        assert result.missing_prerequisites == [{"id": 2, "title": "Course 2"}]

    def test_met_once_every_previous_completed(self):
        enrollment, courses = path_enrollment(C.COMPLETED, C.COMPLETED, C.LOCKED)

        assert self.evaluator.evaluate(enrollment, courses[2]).is_met

    def test_course_outside_path(self):
        enrollment, _ = path_enrollment(C.AVAILABLE)

        result = self.evaluator.evaluate(enrollment, Course(id=99, title="Elsewhere"))

        assert not result.is_met
        assert result.reason == "Course not found in path"
        assert result.missing_prerequisites == []


class TestImmediatePreviousEvaluator:
    evaluator = ImmediatePreviousEvaluator()

    def test_only_direct_predecessor_matters(self):
        enrollment, courses = path_enrollment(C.AVAILABLE, C.COMPLETED, C.LOCKED)

        assert self.evaluator.evaluate(enrollment, courses[2]).is_met

    def test_predecessor_not_completed(self):
        enrollment, courses = path_enrollment(C.COMPLETED, C.AVAILABLE, C.LOCKED)

        result = self.evaluator.evaluate(enrollment, courses[2])

        assert not result.is_met
        assert result.reason == "Previous course must be completed"
        assert result.missing_titles() == ["Course 2"]

    def test_first_course_is_always_met(self):
        enrollment, courses = path_enrollment(C.LOCKED)

        assert self.evaluator.evaluate(enrollment, courses[0]).is_met


class TestNoPrerequisiteEvaluator:
    def test_always_met(self):
        enrollment, courses = path_enrollment(C.LOCKED, C.LOCKED)

        assert NoPrerequisiteEvaluator().evaluate(enrollment, courses[1]).is_met


class TestPrerequisiteEvaluatorFactory:
    def test_path_mode_wins(self):
        factory = PrerequisiteEvaluatorFactory("sequential")
        path = LearningPath(id=1, title="P", prerequisite_mode="immediate_previous")

        assert isinstance(factory.make(path), ImmediatePreviousEvaluator)

    def test_default_mode_applies(self):
        factory = PrerequisiteEvaluatorFactory("none")

        assert isinstance(factory.make(LearningPath(id=1, title="P")), NoPrerequisiteEvaluator)

    def test_unknown_path_mode_is_a_configuration_error(self):
        factory = PrerequisiteEvaluatorFactory()

        with pytest.raises(ConfigurationError) as exc_info:
            factory.make(LearningPath(id=1, title="P", prerequisite_mode="skill_based"))

        assert exc_info.value.context == {"mode": "skill_based"}

    def test_unknown_default_fails_at_construction(self):
        with pytest.raises(ConfigurationError):
            PrerequisiteEvaluatorFactory("whatever")

    def test_available_modes(self):
        assert PrerequisiteEvaluatorFactory().available_modes() == ["sequential", "immediate_previous", "none"]
