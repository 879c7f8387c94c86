# SQLAlchemy models
from .assessment import (
    Assessment,
    AssessmentAttempt,
    AssessmentStatus,
    AttemptAnswer,
    Question,
    QuestionOption,
)
from .base import Base
from .course import Course, CourseStatus, Enrollment, Lesson, LessonProgress
from .learning_path import (
    LearningPath,
    LearningPathCourse,
    LearningPathCourseProgress,
    LearningPathEnrollment,
)

__all__ = [
    "Assessment",
    "AssessmentAttempt",
    "AssessmentStatus",
    "AttemptAnswer",
    "Base",
    "Course",
    "CourseStatus",
    "Enrollment",
    "LearningPath",
    "LearningPathCourse",
    "LearningPathCourseProgress",
    "LearningPathEnrollment",
    "Lesson",
    "LessonProgress",
    "Question",
    "QuestionOption",
]
