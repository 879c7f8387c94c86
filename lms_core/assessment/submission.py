"""
Assessment submission service.

Grades an attempt question by question through the GradingStrategyResolver,
aggregates the score and decides between an immediate ``graded`` outcome
and ``submitted`` (waiting for an instructor). Instructors finish the
latter with submit_bulk_grades().
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lms_core.core.clock import utcnow
from lms_core.core.exceptions import (
    AnswerNotInAttemptError,
    AssessmentNotPublishedError,
    AttemptMismatchError,
    AttemptOwnershipError,
    InvalidScoreError,
    InvalidStateTransitionError,
    MaxAttemptsReachedError,
    QuestionNotInAssessmentError,
)
from lms_core.db.database import transaction
from lms_core.db.models import Assessment, AssessmentAttempt, AttemptAnswer, Question
from lms_core.grading import GradingOutcome, GradingStrategyResolver, QuestionType

from .schemas import ManualGrade, SubmissionResult, SubmittedAnswer
from .states import AttemptStatus, ensure_attempt_transition

CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE.value, QuestionType.MULTIPLE_CHOICE.value})


def calculate_percentage(score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    return round(score / max_score * 100, 2)


class AssessmentSubmissionService:
    def __init__(
        self,
        session: Session,
        resolver: GradingStrategyResolver,
        default_passing_score: float = 70.0,
        default_max_attempts: int = 3,
    ):
        self.session = session
        self.resolver = resolver
        self.default_passing_score = default_passing_score
        self.default_max_attempts = default_max_attempts

    # =========================================================================
    # Attempts
    # =========================================================================

    def start_attempt(self, assessment: Assessment, user_id: int) -> AssessmentAttempt:
        """Open a new attempt, or resume the one already in progress."""
        if not assessment.is_published:
            raise AssessmentNotPublishedError(assessment.id)

        in_progress = self.session.scalars(
            select(AssessmentAttempt).where(
                AssessmentAttempt.assessment_id == assessment.id,
                AssessmentAttempt.user_id == user_id,
                AssessmentAttempt.status == AttemptStatus.IN_PROGRESS,
            )
        ).first()
        if in_progress is not None:
            return in_progress

        max_attempts = assessment.max_attempts or self.default_max_attempts
        used = self.count_used_attempts(assessment, user_id)
        if used >= max_attempts:
            raise MaxAttemptsReachedError(user_id, assessment.id, max_attempts, used)

        with transaction(self.session):
            attempt = AssessmentAttempt(
                assessment=assessment,
                assessment_id=assessment.id,
                user_id=user_id,
                status=AttemptStatus.IN_PROGRESS,
                started_at=utcnow(),
            )
            self.session.add(attempt)
            self.session.flush()

        logger.info(f"Attempt {attempt.id} started: user={user_id} assessment={assessment.id} ({used + 1}/{max_attempts})")
        return attempt

    def count_used_attempts(self, assessment: Assessment, user_id: int) -> int:
        used_statuses = [status for status in AttemptStatus if status.counts_as_used]
        return self.session.scalar(
            select(func.count(AssessmentAttempt.id)).where(
                AssessmentAttempt.assessment_id == assessment.id,
                AssessmentAttempt.user_id == user_id,
                AssessmentAttempt.status.in_(used_statuses),
            )
        ) or 0

    # =========================================================================
    # Submission
    # =========================================================================

    def submit_attempt(
        self,
        attempt: AssessmentAttempt,
        answers: Iterable[SubmittedAnswer],
        assessment: Assessment,
        user_id: int | None = None,
    ) -> SubmissionResult:
        """
        Grade and submit an in-progress attempt.

        Every question of the assessment is graded; questions without a
        submitted answer are graded as blank. If any answer needs a human,
        the attempt goes to ``submitted`` with passed=False, otherwise to
        ``graded``.

        Raises:
            InvalidStateTransitionError: attempt is not in progress
            QuestionNotInAssessmentError: an answer targets a foreign question
            ConcurrentModificationError: the attempt changed underneath us
        """
        self._check_attempt(attempt, assessment, user_id)
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise InvalidStateTransitionError(
                "AssessmentAttempt",
                attempt.id,
                attempt.status.value,
                AttemptStatus.SUBMITTED.value,
                "Attempt is not in progress",
            )

        questions = {question.id: question for question in assessment.questions}
        submitted: dict[int, Any] = {}
        for answer in answers:
            if answer.question_id not in questions:
                raise QuestionNotInAssessmentError(answer.question_id, assessment.id)
            submitted[answer.question_id] = answer.answer

        now = utcnow()
        with transaction(self.session):
            stored = {row.question_id: row for row in attempt.answers}
            pending = False
            for question in assessment.questions:
                row = stored.get(question.id)
                if row is None:
                    row = AttemptAnswer(question=question, question_id=question.id)
                    attempt.answers.append(row)
                self._store_raw_answer(row, question, submitted.get(question.id))

                result = self.resolver.grade(question, row.raw_answer)
                row.is_correct = result.is_correct
                row.score = result.score
                row.feedback = result.feedback
                row.grading_metadata = {**result.metadata, "outcome": result.outcome.value}
                row.graded_at = None if result.requires_manual_grading else now
                pending = pending or result.requires_manual_grading

            total = sum(row.score or 0.0 for row in attempt.answers)
            maximum = float(sum(question.points for question in assessment.questions))
            target = AttemptStatus.SUBMITTED if pending else AttemptStatus.GRADED
            ensure_attempt_transition(attempt.id, attempt.status, target, "Attempt is not in progress")

            percentage = calculate_percentage(total, maximum)
            attempt.score = total
            attempt.max_score = maximum
            attempt.percentage = percentage
            attempt.passed = False if pending else percentage >= self._passing_score(assessment)
            attempt.status = target
            attempt.submitted_at = now
            attempt.graded_at = None if pending else now
            self.session.flush()

            result = SubmissionResult(total, maximum, percentage, bool(attempt.passed), target)

        logger.info(
            f"Attempt {attempt.id} submitted: {total}/{maximum} ({percentage}%) status={target.value} passed={result.passed}"
        )
        return result

    def submit_bulk_grades(
        self,
        attempt: AssessmentAttempt,
        grades: Iterable[ManualGrade],
        assessment: Assessment,
        grader_id: int | None = None,
    ) -> SubmissionResult:
        """
        Apply instructor grades and close the attempt as ``graded``.

        Answers still waiting for review keep their placeholder score (0)
        and become final with the attempt.
        """
        self._check_attempt(attempt, assessment, None)
        if attempt.status not in (AttemptStatus.SUBMITTED, AttemptStatus.GRADED):
            raise InvalidStateTransitionError(
                "AssessmentAttempt",
                attempt.id,
                attempt.status.value,
                AttemptStatus.GRADED.value,
                "Attempt has not been submitted",
            )

        grades = list(grades)
        by_id = {row.id: row for row in attempt.answers}
        for grade in grades:
            row = by_id.get(grade.answer_id)
            if row is None:
                raise AnswerNotInAttemptError(grade.answer_id, attempt.id)
            if grade.score > row.question.points:
                raise InvalidScoreError(grade.answer_id, grade.score, row.question.points)

        now = utcnow()
        with transaction(self.session):
            for grade in grades:
                row = by_id[grade.answer_id]
                row.score = float(grade.score)
                row.is_correct = grade.score > 0
                if grade.feedback is not None:
                    row.feedback = grade.feedback
                row.graded_by = grader_id
                row.graded_at = now
                row.grading_metadata = {**(row.grading_metadata or {}), "graded_manually": True}

            for row in attempt.answers:
                if row.requires_manual_grading:
                    row.grading_metadata = {
                        **(row.grading_metadata or {}),
                        "requires_manual_grading": False,
                        "outcome": GradingOutcome.FINAL.value,
                    }
                    row.graded_at = row.graded_at or now

            total = sum(row.score or 0.0 for row in attempt.answers)
            maximum = float(sum(row.question.points for row in attempt.answers))
            percentage = calculate_percentage(total, maximum)

            ensure_attempt_transition(attempt.id, attempt.status, AttemptStatus.GRADED, "Attempt has not been submitted")
            attempt.score = total
            attempt.max_score = maximum
            attempt.percentage = percentage
            attempt.passed = percentage >= self._passing_score(assessment)
            attempt.status = AttemptStatus.GRADED
            attempt.graded_at = now
            attempt.graded_by = grader_id
            self.session.flush()

            result = SubmissionResult(total, maximum, percentage, bool(attempt.passed), AttemptStatus.GRADED)

        logger.info(f"Attempt {attempt.id} graded by {grader_id}: {total}/{maximum} ({percentage}%)")
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _passing_score(self, assessment: Assessment) -> float:
        if assessment.passing_score is None:
            return self.default_passing_score
        return assessment.passing_score

    @staticmethod
    def _check_attempt(attempt: AssessmentAttempt, assessment: Assessment, user_id: int | None) -> None:
        if attempt.assessment_id != assessment.id:
            raise AttemptMismatchError(attempt.id, assessment.id)
        if user_id is not None and attempt.user_id != user_id:
            raise AttemptOwnershipError(attempt.id, user_id)

    @staticmethod
    def _store_raw_answer(row: AttemptAnswer, question: Question, raw: Any) -> None:
        """Persist learner input in the column the grader will read back."""
        if question.question_type in CHOICE_TYPES:
            if raw is None:
                selected: list[Any] = []
            elif isinstance(raw, (list, tuple, set, frozenset)):
                selected = list(raw)
            else:
                selected = [raw]
            row.selected_options = selected
            row.answer_text = None
            return

        row.selected_options = None
        if raw is None:
            row.answer_text = None
        elif isinstance(raw, bool):
            row.answer_text = "true" if raw else "false"
        else:
            row.answer_text = str(raw)
