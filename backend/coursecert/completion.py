"""Lesson completion rules.

Each lesson type has its own criteria.  The evaluator is a small state
machine over NOT_STARTED, IN_PROGRESS and COMPLETED where COMPLETED is
terminal: once a lesson is complete, lower signals reported later (a
client retry sending an older position, for instance) do not undo it.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from coursecert.models import LessonType, ProgressStatus, Settings


class LessonCompletionCriteria(BaseModel):
    type: LessonType
    minimum_time_spent: Optional[int] = None  # seconds
    minimum_completion_percentage: Optional[float] = None
    minimum_video_watch_percentage: Optional[float] = None
    requires_quiz_pass: bool = False
    requires_manual_completion: bool = False


class ProgressSignals(BaseModel):
    time_spent: int = 0
    completion_percentage: float = 0
    last_position: float = 0


class CompletionResult(BaseModel):
    is_complete: bool = False
    progress: float = 0
    time_spent: int = 0
    completed_at: Optional[datetime] = None
    reason: Optional[str] = None
    next_requirements: List[str] = Field(default_factory=list)

    @property
    def status(self) -> ProgressStatus:
        if self.is_complete:
            return ProgressStatus.COMPLETED
        if self.progress > 0 or self.time_spent > 0:
            return ProgressStatus.IN_PROGRESS
        return ProgressStatus.NOT_STARTED


def completion_criteria(settings: Settings) -> dict[LessonType, LessonCompletionCriteria]:
    return {
        LessonType.TEXT: LessonCompletionCriteria(
            type=LessonType.TEXT,
            minimum_time_spent=settings.min_text_time_seconds,
            minimum_completion_percentage=100,
            requires_manual_completion=True,
        ),
        LessonType.VIDEO: LessonCompletionCriteria(
            type=LessonType.VIDEO,
            minimum_video_watch_percentage=settings.min_video_watch_percentage,
        ),
        LessonType.QUIZ: LessonCompletionCriteria(
            type=LessonType.QUIZ,
            requires_quiz_pass=True,
        ),
    }


def _text_completion(signals, criteria, result, now):
    if criteria.minimum_time_spent and signals.time_spent < criteria.minimum_time_spent:
        result.next_requirements.append(
            f"Spend at least {criteria.minimum_time_spent} seconds reading"
        )
    if (
        criteria.minimum_completion_percentage
        and signals.completion_percentage < criteria.minimum_completion_percentage
    ):
        result.next_requirements.append("Mark lesson as complete")
    result.is_complete = not result.next_requirements
    if result.is_complete:
        result.completed_at = now
        result.progress = 100
    return result


def _video_completion(signals, criteria, result, now):
    required = criteria.minimum_video_watch_percentage
    if required is None:
        required = 90
    if signals.completion_percentage < required:
        result.next_requirements.append(f"Watch {required:g}% of the video")
        return result
    result.is_complete = True
    result.completed_at = now
    result.progress = 100
    return result


def _quiz_completion(criteria, result, best_attempt, passing_score):
    if best_attempt is None:
        result.next_requirements.append("Complete the quiz")
        return result
    result.progress = 100 if best_attempt.passed else best_attempt.score
    if criteria.requires_quiz_pass and not best_attempt.passed:
        result.next_requirements.append(
            f"Pass the quiz with at least {passing_score}%"
        )
        result.reason = f"Quiz score: {best_attempt.score}%, required: {passing_score}%"
        return result
    result.is_complete = True
    result.progress = 100
    result.completed_at = best_attempt.completed_at
    return result


def evaluate_lesson(
    lesson_type: str,
    signals: ProgressSignals,
    settings: Settings,
    *,
    current_status: str = ProgressStatus.NOT_STARTED.value,
    completed_at: Optional[datetime] = None,
    best_attempt=None,
    passing_score: Optional[int] = None,
    quiz_found: bool = True,
    requires_quiz_pass: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """Decide whether a lesson is complete given the learner's signals.

    ``best_attempt`` is the learner's highest scoring submitted attempt of
    the quiz bound to a QUIZ lesson (anything with ``score``, ``passed`` and
    ``completed_at``).
    """

    now = now or datetime.utcnow()
    result = CompletionResult(
        progress=signals.completion_percentage, time_spent=signals.time_spent
    )
    if current_status == ProgressStatus.COMPLETED:
        result.is_complete = True
        result.progress = 100
        result.completed_at = completed_at or now
        return result

    try:
        kind = LessonType(lesson_type)
    except ValueError:
        result.reason = f"Unknown lesson type: {lesson_type}"
        return result
    criteria = completion_criteria(settings)[kind]
    if requires_quiz_pass is not None:
        criteria.requires_quiz_pass = requires_quiz_pass

    if kind == LessonType.TEXT:
        return _text_completion(signals, criteria, result, now)
    if kind == LessonType.VIDEO:
        return _video_completion(signals, criteria, result, now)
    if not quiz_found:
        result.reason = "Quiz not found for this lesson"
        return result
    return _quiz_completion(criteria, result, best_attempt, passing_score)
