"""
Grading Strategies.

Concrete strategies, one per family of question types:

- MultipleChoiceStrategy: option-id set matching with partial credit
- TrueFalseStrategy: boolean / synonym normalization
- ShortAnswerStrategy: exact match, then SequenceMatcher similarity
- ManualGradingStrategy: always pending instructor review

Feedback strings are stored with the answer and shown to learners as-is.
"""

from __future__ import annotations

from collections.abc import Iterable
from difflib import SequenceMatcher
from typing import TYPE_CHECKING, Any

from .base import GradingResult, GradingStrategy, QuestionType

if TYPE_CHECKING:
    from lms_core.db.models import Question

FEEDBACK_CORRECT = "Jawaban benar!"
FEEDBACK_INCORRECT = "Jawaban salah."
FEEDBACK_INVALID = "Jawaban tidak valid."
FEEDBACK_EMPTY = "Tidak ada jawaban."
FEEDBACK_MANUAL_REQUIRED = "Memerlukan penilaian manual."
FEEDBACK_AWAITING_INSTRUCTOR = "Menunggu penilaian instruktur."

DEFAULT_TRUE_VALUES = ("true", "benar", "1", "ya", "yes")
DEFAULT_FALSE_VALUES = ("false", "salah", "0", "tidak", "no")


# =============================================================================
# Multiple Choice
# =============================================================================


class MultipleChoiceStrategy(GradingStrategy):
    """
    Grade single/multiple choice answers by selected option ids.

    Exact set equality earns full credit. On multiple_choice questions with
    more than one correct option, a non-matching selection earns
    ``(correct - 0.5 * incorrect) / total_correct * points`` (floored at 0).
    """

    name = "multiple_choice"
    handled_types = frozenset({QuestionType.MULTIPLE_CHOICE.value, QuestionType.SINGLE_CHOICE.value})

    def __init__(self, partial_credit: bool = True):
        self.partial_credit = partial_credit

    def grade(self, question: Question, answer: Any) -> GradingResult:
        max_points = self._max_points(question)
        selected = self._normalize_selection(answer)
        correct_ids = {option.id for option in question.options if option.is_correct}

        if selected and selected == correct_ids:
            return GradingResult.correct(max_points, FEEDBACK_CORRECT)

        if (
            self.partial_credit
            and question.question_type == QuestionType.MULTIPLE_CHOICE.value
            and selected
            and len(correct_ids) > 1
        ):
            correct_selected = len(selected & correct_ids)
            incorrect_selected = len(selected - correct_ids)
            score = max(0.0, (correct_selected - incorrect_selected * 0.5) / len(correct_ids) * max_points)
            score = round(score, 2)
            if score > 0:
                return GradingResult.partial(
                    score,
                    max_points,
                    f"Sebagian benar. {correct_selected} dari {len(correct_ids)} jawaban benar.",
                    {"correct_selected": correct_selected, "incorrect_selected": incorrect_selected},
                )

        return GradingResult.incorrect(max_points, FEEDBACK_INCORRECT)

    @staticmethod
    def _normalize_selection(answer: Any) -> set[int]:
        """Accept a scalar or a collection; keep only values usable as option ids."""
        if answer is None:
            return set()
        values = answer if isinstance(answer, (list, tuple, set, frozenset)) else [answer]

        selected: set[int] = set()
        for value in values:
            if isinstance(value, bool):
                continue
            try:
                selected.add(int(str(value).strip()))
            except (TypeError, ValueError):
                continue
        return selected


# =============================================================================
# True / False
# =============================================================================


class TrueFalseStrategy(GradingStrategy):
    """Grade true/false answers given as bools or synonym strings."""

    name = "true_false"
    handled_types = frozenset({QuestionType.TRUE_FALSE.value, QuestionType.BOOLEAN.value})

    def __init__(
        self,
        true_values: Iterable[str] = DEFAULT_TRUE_VALUES,
        false_values: Iterable[str] = DEFAULT_FALSE_VALUES,
    ):
        self.true_values = frozenset(v.strip().lower() for v in true_values)
        self.false_values = frozenset(v.strip().lower() for v in false_values)

    def grade(self, question: Question, answer: Any) -> GradingResult:
        max_points = self._max_points(question)
        given = self._normalize(answer)
        if given is None:
            return GradingResult.incorrect(max_points, FEEDBACK_INVALID)

        expected = self._correct_answer(question)
        if given == expected:
            statement = "benar" if expected else "salah"
            return GradingResult.correct(max_points, f"Benar! Pernyataan ini {statement}.")

        statement = "benar" if expected else "salah"
        return GradingResult.incorrect(max_points, f"Jawaban salah. Pernyataan ini sebenarnya {statement}.")

    def _normalize(self, value: Any) -> bool | None:
        if isinstance(value, bool):
            return value
        if value is None:
            return None
        text = str(value).strip().lower()
        if text in self.true_values:
            return True
        if text in self.false_values:
            return False
        return None

    def _correct_answer(self, question: Question) -> bool:
        for option in question.options:
            if option.is_correct:
                parsed = self._normalize(option.option_text)
                return True if parsed is None else parsed

        if question.correct_answer:
            parsed = self._normalize(question.correct_answer)
            if parsed is not None:
                return parsed
        return True


# =============================================================================
# Short Answer
# =============================================================================


class ShortAnswerStrategy(GradingStrategy):
    """
    Grade short free-text answers.

    Acceptable answers come from the comma-separated ``correct_answer`` plus
    the text of options flagged correct. With none configured the answer is
    routed to manual review instead of failing the learner.
    """

    name = "short_answer"
    handled_types = frozenset({QuestionType.SHORT_ANSWER.value, QuestionType.FILL_BLANK.value})

    def __init__(self, similarity_threshold: float = 0.8):
        self.similarity_threshold = similarity_threshold

    def grade(self, question: Question, answer: Any) -> GradingResult:
        max_points = self._max_points(question)
        text = "" if answer is None else str(answer).strip()
        if not text:
            return GradingResult.incorrect(max_points, FEEDBACK_EMPTY)

        acceptable = self._acceptable_answers(question)
        if not acceptable:
            return GradingResult.pending_review(max_points, FEEDBACK_MANUAL_REQUIRED)

        case_sensitive = bool(question.case_sensitive)
        candidate = text if case_sensitive else text.lower()
        for reference in acceptable:
            if candidate == (reference if case_sensitive else reference.lower()):
                return GradingResult.correct(max_points, FEEDBACK_CORRECT)

        best_reference, best_similarity = None, 0.0
        for reference in acceptable:
            similarity = SequenceMatcher(None, text.lower(), reference.lower()).ratio()
            if similarity > best_similarity:
                best_reference, best_similarity = reference, similarity

        if best_reference is not None and best_similarity >= self.similarity_threshold:
            return GradingResult.partial(
                min(max_points, round(max_points * best_similarity, 2)),
                max_points,
                f'Hampir benar. Jawaban yang diharapkan: "{best_reference}"',
                {"similarity": round(best_similarity, 4), "matched_answer": best_reference},
            )

        return GradingResult.incorrect(max_points, FEEDBACK_INCORRECT)

    @staticmethod
    def _acceptable_answers(question: Question) -> list[str]:
        candidates: list[str] = []
        if question.correct_answer:
            candidates.extend(part.strip() for part in question.correct_answer.split(","))
        candidates.extend((option.option_text or "").strip() for option in question.options if option.is_correct)

        # Ordered de-duplication
        return [c for c in dict.fromkeys(candidates) if c]


# =============================================================================
# Manual Grading
# =============================================================================


class ManualGradingStrategy(GradingStrategy):
    """Question types only a human can grade; always returns pending review."""

    name = "manual"
    handled_types = frozenset(
        {
            QuestionType.ESSAY.value,
            QuestionType.LONG_ANSWER.value,
            QuestionType.FILE_UPLOAD.value,
            QuestionType.CODE.value,
            QuestionType.MATCHING.value,
        }
    )

    def grade(self, question: Question, answer: Any) -> GradingResult:
        return GradingResult.pending_review(
            self._max_points(question),
            FEEDBACK_AWAITING_INSTRUCTOR,
            {"grading_rubric": question.grading_rubric},
        )
