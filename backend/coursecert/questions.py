"""Typed question variants.

Question rows are stored loosely (JSON answer column, optional keyword
list); before they reach the scoring or randomization code every row is
validated into one of the variants below.  The ``type`` field is the
discriminator and each variant only carries the fields that make sense
for it.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from coursecert.errors import ValidationError
from coursecert.models import QuizQuestion

Answer = Union[str, List[str]]


class QuestionBase(BaseModel):
    id: Optional[int] = None
    prompt: str = ""
    points: int = Field(default=1, ge=0)
    weight: float = Field(default=1.0, ge=0.1)
    explanation: Optional[str] = None
    order: int = 1


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["MULTIPLE_CHOICE"] = "MULTIPLE_CHOICE"
    options: List[str] = Field(min_length=2)
    correct_answer: Answer


class TrueFalseQuestion(QuestionBase):
    type: Literal["TRUE_FALSE"] = "TRUE_FALSE"
    options: List[str] = Field(default_factory=lambda: ["true", "false"])
    correct_answer: str

    @field_validator("correct_answer")
    @classmethod
    def _true_or_false(cls, value: str) -> str:
        if value.lower() not in ("true", "false"):
            raise ValueError("correct_answer must be 'true' or 'false'")
        return value


class FillInBlankQuestion(QuestionBase):
    type: Literal["FILL_IN_BLANK"] = "FILL_IN_BLANK"
    correct_answer: Answer


class ShortAnswerQuestion(QuestionBase):
    type: Literal["SHORT_ANSWER"] = "SHORT_ANSWER"
    correct_answer: str
    keywords: List[str] = Field(default_factory=list)
    case_sensitive: bool = False
    allow_partial_credit: bool = False


class ManuallyGradedQuestion(QuestionBase):
    """Essay, matching and ordering questions; graded by a person."""

    type: Literal["ESSAY", "MATCHING", "ORDERING"]
    options: List[str] = Field(default_factory=list)
    correct_answer: Optional[Answer] = None


Question = Annotated[
    Union[
        MultipleChoiceQuestion,
        TrueFalseQuestion,
        FillInBlankQuestion,
        ShortAnswerQuestion,
        ManuallyGradedQuestion,
    ],
    Field(discriminator="type"),
]

_question_adapter = TypeAdapter(Question)

AUTO_GRADED_TYPES = {"MULTIPLE_CHOICE", "TRUE_FALSE", "FILL_IN_BLANK", "SHORT_ANSWER"}


def question_from_row(row: QuizQuestion) -> Question:
    """Validate a stored question row into its typed variant."""

    data = {
        "id": row.id,
        "type": row.type,
        "prompt": row.prompt,
        "points": row.points,
        "weight": row.weight,
        "explanation": row.explanation,
        "order": row.order,
        "correct_answer": row.correct_answer,
    }
    if row.type in ("MULTIPLE_CHOICE", "ESSAY", "MATCHING", "ORDERING"):
        data["options"] = list(row.options or [])
    elif row.type == "TRUE_FALSE" and row.options:
        data["options"] = list(row.options)
    if row.type == "SHORT_ANSWER":
        data["keywords"] = list(row.keywords or [])
        data["case_sensitive"] = row.case_sensitive
        data["allow_partial_credit"] = row.allow_partial_credit
    try:
        return _question_adapter.validate_python(data)
    except ValueError as exc:
        raise ValidationError(f"Question {row.id} is malformed: {exc}")


def questions_from_rows(rows: list[QuizQuestion]) -> list[Question]:
    return [question_from_row(r) for r in rows]


def question_to_row(question: Question, quiz_id: int) -> QuizQuestion:
    """Inverse of :func:`question_from_row` used when a quiz is created."""

    data = question.model_dump(exclude={"id"})
    return QuizQuestion(
        quiz_id=quiz_id,
        type=data["type"],
        prompt=data["prompt"],
        options=data.get("options") or [],
        correct_answer=data.get("correct_answer"),
        explanation=data.get("explanation"),
        points=data["points"],
        weight=data["weight"],
        keywords=data.get("keywords") or [],
        case_sensitive=data.get("case_sensitive", False),
        allow_partial_credit=data.get("allow_partial_credit", False),
        order=data["order"],
    )
