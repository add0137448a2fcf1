"""Quiz grading.

Everything here is a pure function of the question list and the submitted
answers: no database access and no randomness, so the same submission
always grades the same way no matter how the questions were presented.
"""

import logging
import math
from typing import Iterable, List, Mapping, Optional

from pydantic import BaseModel

from coursecert.errors import ValidationError
from coursecert.questions import (
    Answer,
    AUTO_GRADED_TYPES,
    Question,
    ShortAnswerQuestion,
)

logger = logging.getLogger(__name__)


class GradedAnswer(BaseModel):
    question_id: int
    user_answer: Optional[Answer] = None
    is_correct: bool = False
    points_earned: int = 0
    max_points: int = 0
    weight: float = 1.0
    weighted_points_earned: float = 0.0
    partial_credit: float = 0.0


class ScoreResult(BaseModel):
    answers: List[GradedAnswer]
    total_points: float
    earned_points: float
    total_weighted_points: float
    earned_weighted_points: float
    score: int
    raw_score: int


def round_half_up(value: float) -> int:
    """Round halves up; ``round()`` rounds halves to even."""
    return int(math.floor(value + 0.5))


def percentage(earned: float, total: float) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * earned / total)


def _is_missing(answer) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return answer == ""
    return len(answer) == 0


def _as_list(answer: Answer) -> list[str]:
    return list(answer) if isinstance(answer, (list, tuple)) else [answer]


def matches_exactly(correct: Answer, given: Answer) -> bool:
    """Exact match; list answers must have the same size and members."""

    if isinstance(correct, list) or isinstance(given, (list, tuple)):
        expected = _as_list(correct)
        actual = _as_list(given)
        return len(expected) == len(actual) and all(a in actual for a in expected)
    return given == correct


def _normalize(text: str, case_sensitive: bool) -> str:
    text = text.strip()
    return text if case_sensitive else text.lower()


def short_answer_credit(question: ShortAnswerQuestion, given: Answer) -> float:
    """Return the fraction of credit (0 to 1) earned by a short answer."""

    if isinstance(given, (list, tuple)):
        if len(given) != 1:
            return 0.0
        given = given[0]
    answer = _normalize(given, question.case_sensitive)
    if answer == _normalize(question.correct_answer, question.case_sensitive):
        return 1.0
    if not (question.allow_partial_credit and question.keywords):
        return 0.0
    found = sum(
        1
        for keyword in question.keywords
        if _normalize(keyword, question.case_sensitive) in answer
    )
    return found / len(question.keywords)


def grade_question(question: Question, given: Optional[Answer]) -> GradedAnswer:
    graded = GradedAnswer(
        question_id=question.id,
        user_answer=given,
        max_points=question.points,
        weight=question.weight,
    )
    if _is_missing(given) or question.type not in AUTO_GRADED_TYPES:
        return graded

    if isinstance(question, ShortAnswerQuestion):
        credit = short_answer_credit(question, given)
        graded.partial_credit = credit
        graded.points_earned = round_half_up(question.points * credit)
        graded.is_correct = credit == 1.0
    else:
        graded.is_correct = matches_exactly(question.correct_answer, given)
        graded.partial_credit = 1.0 if graded.is_correct else 0.0
        graded.points_earned = question.points if graded.is_correct else 0
    graded.weighted_points_earned = graded.points_earned * question.weight
    return graded


def index_answers(
    questions: Iterable[Question], submitted: Iterable[Mapping]
) -> dict[int, Optional[Answer]]:
    """Map question id to answer, rejecting unknown or repeated questions."""

    known = {q.id for q in questions}
    answers: dict[int, Optional[Answer]] = {}
    for item in submitted:
        question_id = item.get("question_id")
        if question_id not in known:
            raise ValidationError(f"Answer for unknown question {question_id}")
        if question_id in answers:
            raise ValidationError(f"Question {question_id} answered twice")
        answers[question_id] = item.get("user_answer")
    return answers


def grade_quiz(
    questions: List[Question], answers: Mapping[int, Optional[Answer]]
) -> ScoreResult:
    """Grade every question and compute weighted and raw percentages.

    ``score`` (weighted) decides pass/fail; ``raw_score`` ignores weights and
    is informational.  Manually graded questions count towards the totals
    while always earning zero here.
    """

    graded = [grade_question(q, answers.get(q.id)) for q in questions]
    total = sum(q.points for q in questions)
    total_weighted = sum(q.points * q.weight for q in questions)
    earned = sum(g.points_earned for g in graded)
    earned_weighted = sum(g.weighted_points_earned for g in graded)

    gradable = sum(q.points for q in questions if q.type in AUTO_GRADED_TYPES)
    if questions and gradable == 0:
        logger.warning(
            "Quiz with %d questions has no auto-gradable points", len(questions)
        )

    return ScoreResult(
        answers=graded,
        total_points=total,
        earned_points=earned,
        total_weighted_points=total_weighted,
        earned_weighted_points=earned_weighted,
        score=percentage(earned_weighted, total_weighted),
        raw_score=percentage(earned, total),
    )
