"""Request and response models for quizzes and quiz attempts."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from coursecert.questions import Answer, Question


class QuizCreate(BaseModel):
    course_id: int
    lesson_id: Optional[int] = None
    title: str
    passing_score: int = Field(default=70, ge=0, le=100)
    time_limit: Optional[int] = Field(default=None, gt=0)
    max_attempts: Optional[int] = Field(default=None, gt=0)
    randomize_questions: bool = False
    randomize_options: bool = False
    questions_per_attempt: Optional[int] = Field(default=None, gt=0)
    is_required: bool = False
    show_correct_answers: bool = True
    questions: List[Question] = Field(min_length=1)


class QuizRead(BaseModel):
    id: int
    course_id: int
    lesson_id: Optional[int] = None
    title: str
    passing_score: int
    time_limit: Optional[int] = None
    max_attempts: Optional[int] = None
    randomize_questions: bool
    randomize_options: bool
    questions_per_attempt: Optional[int] = None
    is_required: bool

    model_config = {"from_attributes": True}


class QuizInstructorView(QuizRead):
    questions: List[dict]


class AttemptView(BaseModel):
    """Learner-facing attempt; questions carry no answers."""

    id: int
    quiz_id: int
    attempt_number: int
    status: str
    started_at: datetime
    time_limit: Optional[int] = None
    questions: List[dict]


class AnswerSubmit(BaseModel):
    question_id: int
    user_answer: Optional[Answer] = None


class AttemptSubmit(BaseModel):
    answers: List[AnswerSubmit] = Field(default_factory=list)
    time_spent: int = Field(ge=0)


class AttemptResult(BaseModel):
    id: int
    quiz_id: int
    attempt_number: int
    status: str
    score: int
    raw_score: int
    passed: bool
    total_points: float
    earned_points: float
    total_weighted_points: float
    earned_weighted_points: float
    time_spent: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    answers: Optional[List[dict]] = None

    model_config = {"from_attributes": True}
