"""
Unit tests for the grading strategies and their resolver.

Questions are transient ORM objects; nothing touches a database.
"""

import pytest

from factories import transient_choice_question
from lms_core.core.exceptions import ConfigurationError
from lms_core.db.models import Question, QuestionOption
from lms_core.grading import (
    GradingOutcome,
    GradingResult,
    GradingStrategyResolver,
    ManualGradingStrategy,
    MultipleChoiceStrategy,
    ShortAnswerStrategy,
    TrueFalseStrategy,
)


class TestGradingResult:
    def test_score_above_max_is_rejected(self):
        with pytest.raises(ValueError):
            GradingResult(True, 11.0, 10.0, "x")

    def test_negative_score_is_rejected(self):
        with pytest.raises(ValueError):
            GradingResult(False, -1.0, 10.0, "x")

    def test_pending_review_sets_outcome_and_flag(self):
        result = GradingResult.pending_review(10, "wait")

        assert result.outcome is GradingOutcome.PENDING_REVIEW
        assert result.requires_manual_grading
        assert result.metadata["requires_manual_grading"] is True
        assert result.is_correct is False
        assert result.score == 0.0

    def test_percentage(self):
        assert GradingResult.partial(2.5, 10, "x").percentage == 25.0
        assert GradingResult.correct(0, "x").percentage == 0.0

    def test_to_dict(self):
        data = GradingResult.correct(4, "ok").to_dict()
        assert data == {
            "is_correct": True,
            "score": 4.0,
            "max_score": 4.0,
            "feedback": "ok",
            "metadata": {},
            "outcome": "final",
        }


class TestMultipleChoiceStrategy:
    """10-point question, one correct option out of four."""

    @pytest.fixture
    def question(self):
        return transient_choice_question(correct_ids=[11], wrong_ids=[12, 13, 14])

    def test_correct_option(self, question):
        result = MultipleChoiceStrategy().grade(question, 11)

        assert result.is_correct is True
        assert result.score == 10.0
        assert result.max_score == 10.0
        assert result.feedback == "Jawaban benar!"

    def test_incorrect_option(self, question):
        result = MultipleChoiceStrategy().grade(question, [12])

        assert result.is_correct is False
        assert result.score == 0.0
        assert result.feedback == "Jawaban salah."

    def test_string_ids_are_normalized(self, question):
        assert MultipleChoiceStrategy().grade(question, ["11"]).is_correct

    def test_empty_selection_is_incorrect(self, question):
        assert MultipleChoiceStrategy().grade(question, None).score == 0.0
        assert MultipleChoiceStrategy().grade(question, []).score == 0.0

    def test_partial_credit_on_multiple_choice(self):
        question = transient_choice_question(
            correct_ids=[1, 2, 3, 4], wrong_ids=[5], question_type="multiple_choice"
        )

        # (2 correct - 0.5 * 1 incorrect) / 4 * 10
        result = MultipleChoiceStrategy().grade(question, [1, 2, 5])

        assert result.score == 3.75
        assert result.is_correct is True
        assert result.feedback == "Sebagian benar. 2 dari 4 jawaban benar."
        assert result.metadata == {"correct_selected": 2, "incorrect_selected": 1}

    def test_partial_credit_floors_at_zero(self):
        question = transient_choice_question(
            correct_ids=[1, 2], wrong_ids=[3, 4, 5], question_type="multiple_choice"
        )

        result = MultipleChoiceStrategy().grade(question, [1, 3, 4, 5])

        assert result.score == 0.0
        assert result.feedback == "Jawaban salah."

    def test_partial_credit_can_be_disabled(self):
        question = transient_choice_question(correct_ids=[1, 2], wrong_ids=[3], question_type="multiple_choice")

        assert MultipleChoiceStrategy(partial_credit=False).grade(question, [1]).score == 0.0

    def test_no_partial_credit_on_single_choice(self):
        question = transient_choice_question(correct_ids=[1, 2], wrong_ids=[3])

        assert MultipleChoiceStrategy().grade(question, [1]).score == 0.0


class TestTrueFalseStrategy:
    @pytest.fixture
    def question(self):
        return Question(id=1, question_type="true_false", points=2, correct_answer="true")

    def test_synonym_answer_is_correct(self, question):
        result = TrueFalseStrategy().grade(question, "benar")

        assert result.is_correct is True
        assert result.score == 2.0
        assert result.feedback == "Benar! Pernyataan ini benar."

    def test_unrecognized_answer_is_invalid(self, question):
        result = TrueFalseStrategy().grade(question, "maybe")

        assert result.is_correct is False
        assert result.score == 0.0
        assert result.feedback == "Jawaban tidak valid."

    def test_wrong_answer_explains_statement(self, question):
        result = TrueFalseStrategy().grade(question, False)

        assert result.is_correct is False
        assert result.feedback == "Jawaban salah. Pernyataan ini sebenarnya benar."

    def test_correct_option_wins_over_correct_answer(self):
        question = Question(id=2, question_type="boolean", points=1, correct_answer="true")
        question.options.append(QuestionOption(id=1, option_text="Salah", is_correct=True))

        assert TrueFalseStrategy().grade(question, "false").is_correct

    def test_custom_vocabulary(self, question):
        strategy = TrueFalseStrategy(true_values=["oui"], false_values=["non"])

        assert strategy.grade(question, "OUI").is_correct
        assert strategy.grade(question, "benar").feedback == "Jawaban tidak valid."


class TestShortAnswerStrategy:
    @pytest.fixture
    def question(self):
        return Question(id=1, question_type="short_answer", points=5, correct_answer="Jakarta")

    def test_case_insensitive_match(self, question):
        result = ShortAnswerStrategy().grade(question, "jakarta")

        assert result.is_correct is True
        assert result.score == 5.0

    def test_wrong_answer(self, question):
        result = ShortAnswerStrategy().grade(question, "Surabaya")

        assert result.is_correct is False
        assert result.score == 0.0
        assert result.feedback == "Jawaban salah."

    def test_case_sensitive_question_falls_to_similarity(self):
        question = Question(id=1, question_type="short_answer", points=5, correct_answer="Jakarta", case_sensitive=True)

        result = ShortAnswerStrategy().grade(question, "jakarta")

        # SequenceMatcher compares lowercased text: similarity 1.0 -> full partial score
        assert result.feedback == 'Hampir benar. Jawaban yang diharapkan: "Jakarta"'
        assert result.score == 5.0

    def test_near_miss_gets_partial_credit(self, question):
        result = ShortAnswerStrategy().grade(question, "Jakartaa")

        assert 0 < result.score < 5.0
        assert result.feedback.startswith("Hampir benar.")
        assert result.metadata["matched_answer"] == "Jakarta"

    def test_comma_separated_alternatives(self):
        question = Question(id=1, question_type="fill_blank", points=1, correct_answer="DKI Jakarta, Jakarta")

        assert ShortAnswerStrategy().grade(question, " jakarta ").is_correct

    def test_blank_answer(self, question):
        assert ShortAnswerStrategy().grade(question, "   ").feedback == "Tidak ada jawaban."

    def test_no_acceptable_answers_needs_manual_grading(self):
        question = Question(id=1, question_type="short_answer", points=5)

        result = ShortAnswerStrategy().grade(question, "anything")

        assert result.metadata["requires_manual_grading"] is True
        assert result.requires_manual_grading
        assert result.feedback == "Memerlukan penilaian manual."


class TestManualGradingStrategy:
    def test_always_pending(self):
        question = Question(id=1, question_type="essay", points=10, grading_rubric={"clarity": 5})

        result = ManualGradingStrategy().grade(question, "My essay")

        assert result.requires_manual_grading
        assert result.max_score == 10.0
        assert result.feedback == "Menunggu penilaian instruktur."
        assert result.metadata["grading_rubric"] == {"clarity": 5}


class TestGradingStrategyResolver:
    @pytest.fixture
    def resolver(self, settings):
        return GradingStrategyResolver.from_settings(settings)

    @pytest.mark.parametrize(
        "question_type,strategy",
        [
            ("single_choice", MultipleChoiceStrategy),
            ("multiple_choice", MultipleChoiceStrategy),
            ("true_false", TrueFalseStrategy),
            ("boolean", TrueFalseStrategy),
            ("short_answer", ShortAnswerStrategy),
            ("fill_blank", ShortAnswerStrategy),
            ("essay", ManualGradingStrategy),
            ("matching", ManualGradingStrategy),
        ],
    )
    def test_resolves_by_type(self, resolver, question_type, strategy):
        assert isinstance(resolver.resolve(Question(id=1, question_type=question_type)), strategy)

    def test_unknown_type_goes_to_review(self, resolver):
        question = Question(id=1, question_type="hotspot", points=3)

        assert resolver.resolve(question) is None
        result = resolver.grade(question, "x")
        assert result.requires_manual_grading
        assert result.max_score == 3.0
        assert result.feedback == "Tipe soal tidak didukung untuk penilaian otomatis."

    def test_duplicate_claims_fail_at_construction(self):
        with pytest.raises(ConfigurationError):
            GradingStrategyResolver([ShortAnswerStrategy(), ShortAnswerStrategy()])

    def test_settings_thresholds_are_applied(self, settings):
        settings.short_answer_similarity_threshold = 1.0
        resolver = GradingStrategyResolver.from_settings(settings)
        question = Question(id=1, question_type="short_answer", points=5, correct_answer="Jakarta")

        assert resolver.grade(question, "Jakartaa").score == 0.0

    def test_supported_types_are_sorted(self, resolver):
        types = resolver.supported_types()
        assert types == sorted(types)
        assert resolver.strategy_name("essay") == "manual"
        assert resolver.strategy_name("hotspot") is None
