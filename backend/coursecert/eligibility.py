"""Certificate eligibility rules.

The database-facing half lives in ``crud.check_certificate_eligibility``
which gathers the facts; this module turns them into a decision.  Every
check is evaluated independently and in a fixed order so the list of
missing requirements is complete and stable between calls.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from coursecert.models import Course, Enrollment, EnrollmentStatus, Lesson, LessonType, Progress, ProgressStatus

# Reading speed used to estimate text lessons without tracked time.
CHARS_PER_MINUTE = 200
TEXT_ESTIMATE_RANGE = (2, 5)
QUIZ_ESTIMATE_RANGE = (3, 8)
MINUTES_PER_QUESTION = 1.5
DEFAULT_VIDEO_MINUTES = 7
DEFAULT_LESSON_MINUTES = 5


class QuizSummary(BaseModel):
    quiz_id: int
    title: str
    required: bool
    passed: bool = False
    best_score: int = 0
    attempts: int = 0


class Requirements(BaseModel):
    no_duplicate_certificate: bool
    has_valid_enrollment: bool
    course_completed: bool
    minimum_time_spent: bool
    required_quizzes_passed: bool
    minimum_score_met: bool
    minimum_score: Optional[int] = None


class EligibilityDetails(BaseModel):
    progress: int = 0
    time_spent: float = 0  # minutes
    minimum_time_required: float = 0
    average_score: float = 0
    required_quizzes: int = 0
    passed_quizzes: int = 0
    quizzes: List[QuizSummary] = Field(default_factory=list)


class EligibilityResult(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    requirements: Requirements
    details: EligibilityDetails
    missing_requirements: List[str] = Field(default_factory=list)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def estimate_lesson_minutes(lesson: Lesson, question_count: int = 0) -> float:
    """Rough study time for a completed lesson that has no tracked time."""

    if lesson.type == LessonType.TEXT:
        return _clamp(len(lesson.content or "") / CHARS_PER_MINUTE, *TEXT_ESTIMATE_RANGE)
    if lesson.type == LessonType.VIDEO:
        return lesson.video_duration or DEFAULT_VIDEO_MINUTES
    if lesson.type == LessonType.QUIZ:
        return _clamp(max(question_count, 1) * MINUTES_PER_QUESTION, *QUIZ_ESTIMATE_RANGE)
    return DEFAULT_LESSON_MINUTES


def estimate_time_spent(
    records: List[tuple[Progress, Lesson]], question_counts: Optional[dict[int, int]] = None
) -> float:
    """Total study time in minutes.

    Tracked seconds are used when present; completed lessons without any
    tracked time fall back to :func:`estimate_lesson_minutes`.
    """

    question_counts = question_counts or {}
    total = 0.0
    for progress, lesson in records:
        if progress.time_spent:
            total += progress.time_spent / 60
        elif progress.status == ProgressStatus.COMPLETED and lesson is not None:
            total += estimate_lesson_minutes(lesson, question_counts.get(lesson.id, 0))
    return total


def average_best_score(quizzes: List[QuizSummary]) -> float:
    attempted = [q for q in quizzes if q.attempts]
    if not attempted:
        return 0.0
    return sum(q.best_score for q in attempted) / len(attempted)


def analyze_eligibility(
    *,
    course: Course,
    enrollment: Optional[Enrollment],
    has_valid_certificate: bool,
    time_spent: float,
    quizzes: List[QuizSummary],
    min_time_fraction: float = 0.5,
) -> EligibilityResult:
    missing: List[str] = []

    no_duplicate = not has_valid_certificate
    if not no_duplicate:
        missing.append("Certificate already issued for this course")

    has_enrollment = (
        enrollment is not None and enrollment.status != EnrollmentStatus.DROPPED
    )
    if not has_enrollment:
        missing.append("Valid enrollment required")

    progress = enrollment.progress if enrollment is not None else 0
    course_completed = progress >= 100
    if not course_completed:
        missing.append(f"Course completion required ({progress}% completed)")

    minimum_time = (course.estimated_completion_time or 0) * min_time_fraction
    time_ok = time_spent >= minimum_time
    if not time_ok:
        missing.append(
            f"Minimum study time required: {round(minimum_time)} minutes "
            f"(current: {round(time_spent)} minutes)"
        )

    required = [q for q in quizzes if q.required]
    passed_required = [q for q in required if q.passed]
    quizzes_ok = len(passed_required) == len(required)
    if not quizzes_ok:
        missing.append(
            f"Required quizzes must be passed ({len(passed_required)}/{len(required)} passed)"
        )

    average = average_best_score(quizzes)
    minimum_score = course.minimum_average_score
    score_ok = not minimum_score or average >= minimum_score
    if not score_ok:
        missing.append(
            f"Minimum average score required: {minimum_score}% (current: {round(average)}%)"
        )

    eligible = all(
        [no_duplicate, has_enrollment, course_completed, time_ok, quizzes_ok, score_ok]
    )
    return EligibilityResult(
        eligible=eligible,
        reason=None if eligible else "; ".join(missing),
        requirements=Requirements(
            no_duplicate_certificate=no_duplicate,
            has_valid_enrollment=has_enrollment,
            course_completed=course_completed,
            minimum_time_spent=time_ok,
            required_quizzes_passed=quizzes_ok,
            minimum_score_met=score_ok,
            minimum_score=minimum_score,
        ),
        details=EligibilityDetails(
            progress=progress,
            time_spent=round(time_spent, 2),
            minimum_time_required=minimum_time,
            average_score=round(average, 2),
            required_quizzes=len(required),
            passed_quizzes=len(passed_required),
            quizzes=quizzes,
        ),
        missing_requirements=missing,
    )
