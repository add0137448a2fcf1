"""Tests for quiz grading."""

import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert.errors import ValidationError
from coursecert.questions import (
    FillInBlankQuestion,
    ManuallyGradedQuestion,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)
from coursecert.scoring import grade_question, grade_quiz, index_answers, round_half_up


def test_weighted_and_raw_scores_differ():
    questions = [
        MultipleChoiceQuestion(id=1, options=["a", "b"], correct_answer="a", points=10, weight=1),
        MultipleChoiceQuestion(id=2, options=["a", "b"], correct_answer="b", points=10, weight=2),
    ]
    result = grade_quiz(questions, {1: "a", 2: "a"})
    assert result.earned_points == 10
    assert result.total_points == 20
    assert result.earned_weighted_points == 10
    assert result.total_weighted_points == 30
    assert result.score == 33
    assert result.raw_score == 50


def test_short_answer_keyword_partial_credit():
    question = ShortAnswerQuestion(
        id=7,
        correct_answer="the sun emits light",
        keywords=["sun", "light"],
        allow_partial_credit=True,
        points=10,
    )
    graded = grade_question(question, "The Sun gives heat")
    assert graded.points_earned == 5
    assert graded.is_correct is False
    assert graded.partial_credit == 0.5


def test_short_answer_exact_match_ignores_case_and_whitespace():
    question = ShortAnswerQuestion(id=1, correct_answer="Photosynthesis", points=4)
    graded = grade_question(question, "  photosynthesis ")
    assert graded.is_correct
    assert graded.points_earned == 4


def test_short_answer_case_sensitive():
    question = ShortAnswerQuestion(id=1, correct_answer="NaCl", case_sensitive=True, points=4)
    assert grade_question(question, "nacl").points_earned == 0


def test_short_answer_without_partial_credit_scores_zero():
    question = ShortAnswerQuestion(
        id=1, correct_answer="sun and light", keywords=["sun", "light"], points=10
    )
    graded = grade_question(question, "sun")
    assert graded.points_earned == 0
    assert graded.partial_credit == 0


def test_multi_answer_needs_same_cardinality():
    question = MultipleChoiceQuestion(
        id=1, options=["a", "b", "c"], correct_answer=["a", "c"], points=5
    )
    assert grade_question(question, ["c", "a"]).is_correct
    assert not grade_question(question, ["a", "c", "b"]).is_correct
    assert not grade_question(question, ["a"]).is_correct


def test_missing_answers_earn_nothing():
    questions = [
        TrueFalseQuestion(id=1, correct_answer="true", points=5),
        FillInBlankQuestion(id=2, correct_answer="Mars", points=5),
    ]
    result = grade_quiz(questions, {2: ""})
    assert result.earned_points == 0
    assert result.score == 0
    assert [a.is_correct for a in result.answers] == [False, False]


def test_manually_graded_questions_count_in_denominator():
    questions = [
        TrueFalseQuestion(id=1, correct_answer="true", points=5),
        ManuallyGradedQuestion(id=2, type="ESSAY", points=5),
    ]
    result = grade_quiz(questions, {1: "true", 2: "A long essay"})
    assert result.total_points == 10
    assert result.score == 50
    assert result.answers[1].points_earned == 0


def test_quiz_of_only_essays_scores_zero():
    questions = [ManuallyGradedQuestion(id=1, type="ESSAY", points=10)]
    assert grade_quiz(questions, {1: "text"}).score == 0


def test_zero_point_quiz_scores_zero():
    questions = [TrueFalseQuestion(id=1, correct_answer="true", points=0)]
    result = grade_quiz(questions, {1: "true"})
    assert result.score == 0
    assert result.raw_score == 0


def test_rounding_is_half_up():
    assert round_half_up(32.5) == 33
    assert round_half_up(33.4) == 33
    questions = [
        TrueFalseQuestion(id=i, correct_answer="true", points=1) for i in range(1, 9)
    ]
    # 5 of 8 is 62.5%
    answers = {i: "true" if i <= 5 else "false" for i in range(1, 9)}
    assert grade_quiz(questions, answers).score == 63


def test_index_answers_rejects_unknown_and_repeated_questions():
    questions = [TrueFalseQuestion(id=1, correct_answer="true")]
    with pytest.raises(ValidationError):
        index_answers(questions, [{"question_id": 99, "user_answer": "true"}])
    with pytest.raises(ValidationError):
        index_answers(
            questions,
            [
                {"question_id": 1, "user_answer": "true"},
                {"question_id": 1, "user_answer": "false"},
            ],
        )


def test_question_variants_are_validated():
    with pytest.raises(ValueError):
        TrueFalseQuestion(id=1, correct_answer="maybe")
    with pytest.raises(ValueError):
        MultipleChoiceQuestion(id=1, options=["only"], correct_answer="only")
