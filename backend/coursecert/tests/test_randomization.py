"""Tests for per-attempt question sampling and shuffling."""

import pathlib
import random
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert.questions import MultipleChoiceQuestion, TrueFalseQuestion
from coursecert.randomization import (
    build_presentation,
    fisher_yates,
    frozen_questions,
    public_question,
)
from coursecert.scoring import grade_quiz


def _bank():
    questions = [
        MultipleChoiceQuestion(
            id=i,
            order=i,
            options=["red", "green", "blue", "yellow"],
            correct_answer="green",
            points=2,
        )
        for i in range(1, 9)
    ]
    questions.append(TrueFalseQuestion(id=9, order=9, correct_answer="true", points=2))
    return questions


def test_same_seed_gives_same_presentation():
    bank = _bank()
    first = build_presentation(bank, 42, 5, randomize_questions=True, randomize_options=True)
    second = build_presentation(bank, 42, 5, randomize_questions=True, randomize_options=True)
    assert first == second


def test_bank_is_not_mutated():
    bank = _bank()
    snapshot = [q.model_dump() for q in bank]
    build_presentation(bank, 7, 3, randomize_questions=True, randomize_options=True)
    assert [q.model_dump() for q in bank] == snapshot


def test_sample_size_is_clamped_to_bank():
    bank = _bank()
    presentation = build_presentation(bank, 3, questions_per_attempt=50)
    assert presentation.question_order == [q.id for q in bank]
    sampled = build_presentation(bank, 3, questions_per_attempt=4)
    assert len(sampled.question_order) == 4
    assert len(set(sampled.question_order)) == 4


def test_option_shuffle_keeps_the_same_options():
    bank = _bank()
    presentation = build_presentation(bank, 11, randomize_options=True)
    for question in bank:
        if question.type == "MULTIPLE_CHOICE":
            assert sorted(presentation.option_order[str(question.id)]) == sorted(question.options)
    assert presentation.option_order["9"] == ["true", "false"]


def test_presentation_does_not_change_grading():
    bank = _bank()
    answers = {q.id: ("green" if q.type == "MULTIPLE_CHOICE" else "false") for q in bank}
    expected = grade_quiz(bank, answers)
    for seed in (1, 2, 3, 99):
        presentation = build_presentation(
            bank, seed, randomize_questions=True, randomize_options=True
        )
        served = frozen_questions(bank, presentation.question_order)
        result = grade_quiz(served, answers)
        assert result.score == expected.score
        assert result.raw_score == expected.raw_score


def test_frozen_questions_skip_removed_questions():
    bank = _bank()
    assert [q.id for q in frozen_questions(bank[:2], [2, 5, 1])] == [2, 1]


def test_fisher_yates_returns_permutation():
    items = list(range(20))
    shuffled = fisher_yates(items, random.Random(5))
    assert sorted(shuffled) == items
    assert items == list(range(20))


def test_public_question_hides_answers():
    question = MultipleChoiceQuestion(
        id=1, options=["a", "b"], correct_answer="a", explanation="because"
    )
    data = public_question(question, ["b", "a"])
    assert "correct_answer" not in data
    assert "explanation" not in data
    assert data["options"] == ["b", "a"]
