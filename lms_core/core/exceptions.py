"""
Domain exceptions for lms-core.

Every failure raised by the services derives from DomainError so callers
(controllers, CLI) can translate them in one place. Each error carries a
``context`` dict with the identifiers involved; messages are for logs and
operators, not end users.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for all lms-core errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


# =============================================================================
# State Machine Errors
# =============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when a state machine rejects a transition."""

    def __init__(
        self,
        model_type: str,
        model_id: Any,
        from_state: str,
        to_state: str,
        reason: str = "transition not allowed",
    ):
        super().__init__(
            f'Cannot transition {model_type}({model_id}) from "{from_state}" to "{to_state}": {reason}',
            model_type=model_type,
            model_id=model_id,
            from_state=from_state,
            to_state=to_state,
        )
        self.model_type = model_type
        self.model_id = model_id
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason


class ConcurrentModificationError(DomainError):
    """Raised when an optimistic version check fails on flush."""


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DomainError, ValueError):
    """Raised for data/config bugs that must not be silently defaulted."""


# =============================================================================
# Lookup Errors
# =============================================================================


class EntityNotFoundError(DomainError, LookupError):
    def __init__(self, model_type: str, model_id: Any):
        super().__init__(f"{model_type}({model_id}) not found", model_type=model_type, model_id=model_id)
        self.model_type = model_type
        self.model_id = model_id


# =============================================================================
# Precondition Errors (raised before any mutation)
# =============================================================================


class PreconditionError(DomainError):
    """A request was rejected because its preconditions do not hold."""


class AlreadyEnrolledError(PreconditionError):
    def __init__(self, user_id: int, target_type: str, target_id: int):
        super().__init__(
            f"User {user_id} is already enrolled in {target_type}({target_id})",
            user_id=user_id,
            target_type=target_type,
            target_id=target_id,
        )


class PathNotPublishedError(PreconditionError):
    def __init__(self, path_id: int):
        super().__init__(f"LearningPath({path_id}) is not published", path_id=path_id)


class CourseNotPublishedError(PreconditionError):
    def __init__(self, course_id: int):
        super().__init__(f"Course({course_id}) is not published", course_id=course_id)


class CourseNotInPathError(PreconditionError):
    def __init__(self, course_id: int, path_id: int):
        super().__init__(
            f"Course({course_id}) is not part of LearningPath({path_id})",
            course_id=course_id,
            path_id=path_id,
        )


class PrerequisitesNotMetError(PreconditionError):
    def __init__(self, course_id: int, missing: list[dict[str, Any]], reason: str | None = None):
        titles = ", ".join(str(item.get("title")) for item in missing)
        super().__init__(
            f"Prerequisites not met for Course({course_id}): {reason or titles}",
            course_id=course_id,
            missing=missing,
        )
        self.missing = missing
        self.reason = reason


class LessonNotInCourseError(PreconditionError):
    def __init__(self, lesson_id: int, course_id: int):
        super().__init__(
            f"Lesson({lesson_id}) does not belong to Course({course_id})",
            lesson_id=lesson_id,
            course_id=course_id,
        )


class QuestionNotInAssessmentError(PreconditionError):
    def __init__(self, question_id: Any, assessment_id: int):
        super().__init__(
            f"Question({question_id}) is not part of Assessment({assessment_id})",
            question_id=question_id,
            assessment_id=assessment_id,
        )


class AnswerNotInAttemptError(PreconditionError):
    def __init__(self, answer_id: Any, attempt_id: int):
        super().__init__(
            f"Answer({answer_id}) does not belong to AssessmentAttempt({attempt_id})",
            answer_id=answer_id,
            attempt_id=attempt_id,
        )


class AttemptMismatchError(PreconditionError):
    def __init__(self, attempt_id: int, assessment_id: int):
        super().__init__(
            f"AssessmentAttempt({attempt_id}) does not belong to Assessment({assessment_id})",
            attempt_id=attempt_id,
            assessment_id=assessment_id,
        )


class AttemptOwnershipError(PreconditionError):
    def __init__(self, attempt_id: int, user_id: int):
        super().__init__(
            f"AssessmentAttempt({attempt_id}) does not belong to user {user_id}",
            attempt_id=attempt_id,
            user_id=user_id,
        )


class AssessmentNotPublishedError(PreconditionError):
    def __init__(self, assessment_id: int):
        super().__init__(f"Assessment({assessment_id}) is not published", assessment_id=assessment_id)


class MaxAttemptsReachedError(PreconditionError):
    def __init__(self, user_id: int, assessment_id: int, max_attempts: int, used_attempts: int):
        super().__init__(
            f"User {user_id} used {used_attempts}/{max_attempts} attempts on Assessment({assessment_id})",
            user_id=user_id,
            assessment_id=assessment_id,
            max_attempts=max_attempts,
            used_attempts=used_attempts,
        )
        self.max_attempts = max_attempts
        self.used_attempts = used_attempts


class InvalidScoreError(PreconditionError):
    def __init__(self, answer_id: Any, score: float, max_score: float):
        super().__init__(
            f"Score {score} for Answer({answer_id}) is outside 0..{max_score}",
            answer_id=answer_id,
            score=score,
            max_score=max_score,
        )
