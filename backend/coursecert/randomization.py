"""Per-attempt question sampling and shuffling.

The shuffle is anti-memorization, not a security control, so a seeded
``random.Random`` is enough.  The seed is stored on the attempt which
makes the presentation reproducible: the learner sees the same order on
every reload and grading uses the exact questions that were served.
"""

import random
from typing import List, Optional

from pydantic import BaseModel

from coursecert.questions import Question


class Presentation(BaseModel):
    question_order: List[int]
    option_order: dict[str, List[str]]


def new_seed() -> int:
    return random.SystemRandom().randrange(1, 2**31)


def fisher_yates(items: list, rng: random.Random) -> list:
    """Return a shuffled copy of ``items``."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def effective_sample_size(bank_size: int, questions_per_attempt: Optional[int]) -> int:
    if not questions_per_attempt or questions_per_attempt <= 0:
        return bank_size
    return min(questions_per_attempt, bank_size)


def build_presentation(
    questions: List[Question],
    seed: int,
    questions_per_attempt: Optional[int] = None,
    randomize_questions: bool = False,
    randomize_options: bool = False,
) -> Presentation:
    """Pick, order and shuffle the questions served for one attempt.

    ``questions`` is never modified; the result only holds ids and option
    lists.  Option orders are keyed by the question id as a string so the
    mapping survives a JSON round trip unchanged.
    """

    rng = random.Random(seed)
    bank = sorted(questions, key=lambda q: (q.order, q.id))
    size = effective_sample_size(len(bank), questions_per_attempt)
    if size < len(bank):
        picked = set(q.id for q in rng.sample(bank, size))
        # keep authored order unless shuffling was asked for
        bank = [q for q in bank if q.id in picked]
    if randomize_questions:
        bank = fisher_yates(bank, rng)

    option_order: dict[str, List[str]] = {}
    for q in bank:
        options = list(getattr(q, "options", []) or [])
        if randomize_options and q.type == "MULTIPLE_CHOICE":
            options = fisher_yates(options, rng)
        if options:
            option_order[str(q.id)] = options
    return Presentation(question_order=[q.id for q in bank], option_order=option_order)


def frozen_questions(questions: List[Question], question_order: List[int]) -> List[Question]:
    """Return the attempt's questions in the order they were served.

    Questions removed from the bank after the attempt started are skipped.
    """

    by_id = {q.id: q for q in questions}
    return [by_id[qid] for qid in question_order if qid in by_id]


def public_question(question: Question, options: Optional[List[str]] = None) -> dict:
    """Learner-facing view of a question without answers or explanations."""

    data = question.model_dump(
        exclude={"correct_answer", "explanation", "keywords", "case_sensitive", "allow_partial_credit"}
    )
    if options is not None:
        data["options"] = options
    return data


def instructor_question(question: Question) -> dict:
    return question.model_dump()
