"""Asynchronous CRUD helpers and engine operations backed by the database.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Read-then-write sequences that can race
(attempt creation, achievement awards, progress rows, enrollments) rely on
the unique constraints declared in ``models.py``: an ``IntegrityError`` is
caught, the session rolled back and the existing row used instead.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from coursecert.aggregation import CourseCompletion, summarize_course_completion
from coursecert.auth import get_password_hash
from coursecert.completion import CompletionResult, ProgressSignals, evaluate_lesson
from coursecert.eligibility import (
    EligibilityResult,
    QuizSummary,
    analyze_eligibility,
    estimate_time_spent,
)
from coursecert.errors import NotFound, PolicyViolation, ValidationError
from coursecert.models import (
    Achievement,
    AttemptStatus,
    BadgeType,
    Certificate,
    CertificateStatus,
    Course,
    Enrollment,
    EnrollmentStatus,
    Lesson,
    LessonType,
    Progress,
    ProgressStatus,
    Quiz,
    QuizAttempt,
    QuizQuestion,
    Settings,
    User,
)
from coursecert.questions import Question, question_to_row, questions_from_rows
from coursecert.randomization import build_presentation, frozen_questions, new_seed
from coursecert.scoring import grade_quiz, index_answers

logger = logging.getLogger(__name__)


# --- Users and settings --------------------------------------------------


async def create_user(db: AsyncSession, user: User) -> User:
    """Create a new user, hashing the plain password held in ``password_hash``."""

    user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


# --- Courses, lessons and enrollments -----------------------------------


async def create_course(db: AsyncSession, course: Course) -> Course:
    db.add(course)
    await db.commit()
    await db.refresh(course)
    return course


async def get_course(db: AsyncSession, course_id: int) -> Course | None:
    return await db.get(Course, course_id)


async def create_lesson(db: AsyncSession, lesson: Lesson) -> Lesson:
    db.add(lesson)
    await db.commit()
    await db.refresh(lesson)
    return lesson


async def get_lesson(db: AsyncSession, lesson_id: int) -> Lesson | None:
    return await db.get(Lesson, lesson_id)


async def get_published_lessons(db: AsyncSession, course_id: int) -> list[Lesson]:
    result = await db.execute(
        select(Lesson)
        .where(Lesson.course_id == course_id, Lesson.is_published == True)  # noqa: E712
        .order_by(Lesson.order, Lesson.id)
    )
    return result.scalars().all()


async def get_enrollment(
    db: AsyncSession, user_id: int, course_id: int
) -> Enrollment | None:
    result = await db.execute(
        select(Enrollment).where(
            Enrollment.user_id == user_id, Enrollment.course_id == course_id
        )
    )
    return result.scalar_one_or_none()


async def enroll_user(db: AsyncSession, user_id: int, course_id: int) -> Enrollment:
    """Find or create the enrollment of a user in a course."""

    enrollment = await get_enrollment(db, user_id, course_id)
    if enrollment:
        return enrollment
    enrollment = Enrollment(user_id=user_id, course_id=course_id)
    db.add(enrollment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return await get_enrollment(db, user_id, course_id)
    await db.refresh(enrollment)
    return enrollment


async def save_enrollment(db: AsyncSession, enrollment: Enrollment) -> Enrollment:
    db.add(enrollment)
    await db.commit()
    await db.refresh(enrollment)
    return enrollment


# --- Quizzes --------------------------------------------------------------


async def create_quiz(
    db: AsyncSession, quiz: Quiz, questions: list[Question]
) -> Quiz:
    """Store a quiz together with its validated questions."""

    if not 0 <= quiz.passing_score <= 100:
        raise ValidationError("passing_score must be between 0 and 100")
    db.add(quiz)
    await db.flush()
    for question in questions:
        db.add(question_to_row(question, quiz.id))
    await db.commit()
    await db.refresh(quiz)
    return quiz


async def get_quiz(db: AsyncSession, quiz_id: int) -> Quiz | None:
    return await db.get(Quiz, quiz_id)


async def get_quiz_for_lesson(db: AsyncSession, lesson_id: int) -> Quiz | None:
    result = await db.execute(
        select(Quiz).where(Quiz.lesson_id == lesson_id).order_by(Quiz.id)
    )
    return result.scalars().first()


async def get_quizzes_for_course(db: AsyncSession, course_id: int) -> list[Quiz]:
    result = await db.execute(
        select(Quiz)
        .where(Quiz.course_id == course_id, Quiz.is_published == True)  # noqa: E712
        .order_by(Quiz.id)
    )
    return result.scalars().all()


async def get_questions_for_quiz(db: AsyncSession, quiz_id: int) -> list[QuizQuestion]:
    result = await db.execute(
        select(QuizQuestion)
        .where(QuizQuestion.quiz_id == quiz_id)
        .order_by(QuizQuestion.order, QuizQuestion.id)
    )
    return result.scalars().all()


async def get_quiz_questions(db: AsyncSession, quiz_id: int) -> list[Question]:
    """Questions of a quiz validated into their typed variants."""
    return questions_from_rows(await get_questions_for_quiz(db, quiz_id))


# --- Achievements ---------------------------------------------------------

BADGES = {
    BadgeType.FIRST_QUIZ_PASSED: ("First Quiz Passed", "Passed your first quiz"),
    BadgeType.PERFECT_SCORE: ("Perfect Score", "Achieved 100% on a quiz"),
    BadgeType.QUIZ_MASTER: ("Quiz Master", "Passed 10 or more quizzes"),
    BadgeType.COURSE_COMPLETER: ("Course Completer", "Completed a course"),
}


async def get_achievement(
    db: AsyncSession, user_id: int, badge_type: str
) -> Achievement | None:
    result = await db.execute(
        select(Achievement).where(
            Achievement.user_id == user_id, Achievement.badge_type == badge_type
        )
    )
    return result.scalar_one_or_none()


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[Achievement]:
    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user_id)
        .order_by(Achievement.earned_at.desc(), Achievement.id.desc())
    )
    return result.scalars().all()


async def award_achievement(
    db: AsyncSession,
    user_id: int,
    badge_type: BadgeType,
    course_id: int | None = None,
    quiz_id: int | None = None,
    details: dict | None = None,
) -> Achievement | None:
    """Award a badge once.  Returns ``None`` if the user already has it.

    A concurrent award of the same badge trips the unique constraint; that
    is treated like the badge already being there.  The rollback expires
    every object in the session, so callers refresh what they keep using.
    """

    if await get_achievement(db, user_id, badge_type.value):
        return None
    title, description = BADGES[badge_type]
    achievement = Achievement(
        user_id=user_id,
        badge_type=badge_type.value,
        title=title,
        description=description,
        course_id=course_id,
        quiz_id=quiz_id,
        details=details or {},
    )
    db.add(achievement)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Achievement %s already awarded to user %s", badge_type.value, user_id)
        return None
    await db.refresh(achievement)
    logger.info("Achievement %s awarded to user %s", badge_type.value, user_id)
    return achievement


async def count_passed_quizzes(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(func.distinct(QuizAttempt.quiz_id))).where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.status == AttemptStatus.SUBMITTED.value,
            QuizAttempt.passed == True,  # noqa: E712
        )
    )
    return result.scalar() or 0


async def award_quiz_achievements(
    db: AsyncSession,
    user_id: int,
    quiz_id: int,
    course_id: int,
    score: int,
    settings: Settings,
) -> list[Achievement]:
    """Emit badge signals for a passing submission."""

    awarded = []
    passed_quizzes = await count_passed_quizzes(db, user_id)
    signals = [(BadgeType.FIRST_QUIZ_PASSED, {"quiz_id": quiz_id})]
    if score == 100:
        signals.append((BadgeType.PERFECT_SCORE, {"score": score}))
    if passed_quizzes >= settings.quiz_master_threshold:
        signals.append((BadgeType.QUIZ_MASTER, {"total_quizzes_passed": passed_quizzes}))
    for badge_type, details in signals:
        achievement = await award_achievement(
            db, user_id, badge_type, course_id=course_id, quiz_id=quiz_id, details=details
        )
        if achievement:
            awarded.append(achievement)
    return awarded


# --- Quiz attempts ----------------------------------------------------------


async def get_open_attempt(
    db: AsyncSession, user_id: int, quiz_id: int
) -> QuizAttempt | None:
    result = await db.execute(
        select(QuizAttempt).where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == AttemptStatus.OPEN.value,
        )
    )
    return result.scalars().first()


async def get_last_attempt_number(db: AsyncSession, user_id: int, quiz_id: int) -> int:
    result = await db.execute(
        select(func.max(QuizAttempt.attempt_number)).where(
            QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id
        )
    )
    return result.scalar() or 0


async def count_submitted_attempts(db: AsyncSession, user_id: int, quiz_id: int) -> int:
    result = await db.execute(
        select(func.count(QuizAttempt.id)).where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == AttemptStatus.SUBMITTED.value,
        )
    )
    return result.scalar() or 0


def attempt_deadline_seconds(quiz: Quiz, settings: Settings) -> Optional[int]:
    """Seconds allowed for an attempt including the grace period."""
    if not quiz.time_limit:
        return None
    return quiz.time_limit * 60 + settings.quiz_grace_period_seconds


def attempt_has_expired(
    attempt: QuizAttempt, quiz: Quiz, settings: Settings, now: datetime
) -> bool:
    deadline = attempt_deadline_seconds(quiz, settings)
    if deadline is None or attempt.status != AttemptStatus.OPEN:
        return False
    return (now - attempt.started_at).total_seconds() > deadline


async def expire_attempt(
    db: AsyncSession, attempt: QuizAttempt, now: datetime | None = None
) -> QuizAttempt:
    """Close an OPEN attempt as EXPIRED with a zero score.

    The conditional update makes this a no-op for attempts that were
    already submitted or expired, including by a concurrent request.
    """

    now = now or datetime.utcnow()
    elapsed = int((now - attempt.started_at).total_seconds())
    result = await db.execute(
        update(QuizAttempt)
        .where(
            QuizAttempt.id == attempt.id,
            QuizAttempt.status == AttemptStatus.OPEN.value,
        )
        .values(
            status=AttemptStatus.EXPIRED.value,
            score=0,
            raw_score=0,
            earned_points=0,
            earned_weighted_points=0,
            passed=False,
            time_spent=max(elapsed, 0),
            completed_at=now,
            is_completed=True,
        )
    )
    expired = result.rowcount
    await db.commit()
    await db.refresh(attempt)
    if expired:
        logger.info(
            "Quiz attempt %s expired for user %s after %ss",
            attempt.id,
            attempt.user_id,
            attempt.time_spent,
        )
    return attempt


async def get_attempt(
    db: AsyncSession, attempt_id: int, now: datetime | None = None
) -> QuizAttempt | None:
    """Fetch an attempt, expiring it first if its time ran out."""

    attempt = await db.get(QuizAttempt, attempt_id)
    if not attempt or attempt.status != AttemptStatus.OPEN:
        return attempt
    quiz = await get_quiz(db, attempt.quiz_id)
    settings = await get_settings(db)
    now = now or datetime.utcnow()
    if quiz and attempt_has_expired(attempt, quiz, settings, now):
        attempt = await expire_attempt(db, attempt, now)
    return attempt


async def start_attempt(
    db: AsyncSession, user_id: int, quiz_id: int, now: datetime | None = None
) -> QuizAttempt:
    """Return the learner's OPEN attempt or start a new one.

    An OPEN attempt whose time ran out is expired first.  ``max_attempts``
    counts submitted attempts only.  When two requests race to create the
    attempt, the unique OPEN-attempt index lets only one insert succeed and
    the other returns the winner's attempt.
    """

    now = now or datetime.utcnow()
    quiz = await get_quiz(db, quiz_id)
    if not quiz or not quiz.is_published:
        raise NotFound("Quiz not found")
    settings = await get_settings(db)

    existing = await get_open_attempt(db, user_id, quiz_id)
    if existing:
        if not attempt_has_expired(existing, quiz, settings, now):
            return existing
        await expire_attempt(db, existing, now)

    if quiz.max_attempts:
        submitted = await count_submitted_attempts(db, user_id, quiz_id)
        if submitted >= quiz.max_attempts:
            logger.warning(
                "User %s exceeded max attempts (%s) for quiz %s",
                user_id,
                quiz.max_attempts,
                quiz_id,
            )
            raise PolicyViolation(
                f"Maximum attempts exceeded ({quiz.max_attempts})",
                code="max_attempts_exceeded",
            )

    questions = await get_quiz_questions(db, quiz_id)
    if not questions:
        raise ValidationError("Quiz has no questions")
    seed = new_seed()
    presentation = build_presentation(
        questions,
        seed,
        questions_per_attempt=quiz.questions_per_attempt,
        randomize_questions=quiz.randomize_questions,
        randomize_options=quiz.randomize_options,
    )
    attempt = QuizAttempt(
        user_id=user_id,
        quiz_id=quiz_id,
        course_id=quiz.course_id,
        lesson_id=quiz.lesson_id,
        attempt_number=await get_last_attempt_number(db, user_id, quiz_id) + 1,
        seed=seed,
        question_order=presentation.question_order,
        option_order=presentation.option_order,
        started_at=now,
    )
    db.add(attempt)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        winner = await get_open_attempt(db, user_id, quiz_id)
        if winner:
            return winner
        raise
    await db.refresh(attempt)
    logger.info(
        "Quiz attempt %s (#%s) started by user %s on quiz %s",
        attempt.id,
        attempt.attempt_number,
        user_id,
        quiz_id,
    )
    return attempt


async def submit_attempt(
    db: AsyncSession,
    attempt_id: int,
    user_id: int,
    answers: list[dict],
    time_spent: int,
    now: datetime | None = None,
) -> QuizAttempt:
    """Grade and close an OPEN attempt.

    Re-submitting an attempt that is already SUBMITTED or EXPIRED returns it
    unchanged.  The attempt is closed with a conditional update so two
    concurrent submissions cannot both score it.
    """

    now = now or datetime.utcnow()
    attempt = await db.get(QuizAttempt, attempt_id)
    if not attempt or attempt.user_id != user_id:
        raise NotFound("Quiz attempt not found")
    if attempt.status != AttemptStatus.OPEN:
        return attempt
    if time_spent < 0:
        raise ValidationError("time_spent cannot be negative")

    quiz = await get_quiz(db, attempt.quiz_id)
    if not quiz:
        raise NotFound("Quiz not found")
    settings = await get_settings(db)

    if attempt_has_expired(attempt, quiz, settings, now):
        await expire_attempt(db, attempt, now)
        raise PolicyViolation("The attempt has expired", code="attempt_expired")
    deadline = attempt_deadline_seconds(quiz, settings)
    if deadline is not None and time_spent > deadline:
        logger.warning(
            "Rejected submission of attempt %s: %ss exceeds %ss",
            attempt_id,
            time_spent,
            deadline,
        )
        raise PolicyViolation("Time limit exceeded", code="time_limit_exceeded")
    if quiz.max_attempts:
        submitted = await count_submitted_attempts(db, user_id, quiz.id)
        if submitted >= quiz.max_attempts:
            raise PolicyViolation(
                f"Maximum attempts exceeded ({quiz.max_attempts})",
                code="max_attempts_exceeded",
            )

    questions = frozen_questions(
        await get_quiz_questions(db, quiz.id), attempt.question_order
    )
    result = grade_quiz(questions, index_answers(questions, answers))
    passed = result.score >= quiz.passing_score
    quiz_id, course_id, lesson_id = quiz.id, quiz.course_id, quiz.lesson_id

    closed = await db.execute(
        update(QuizAttempt)
        .where(
            QuizAttempt.id == attempt_id,
            QuizAttempt.status == AttemptStatus.OPEN.value,
        )
        .values(
            status=AttemptStatus.SUBMITTED.value,
            answers=[a.model_dump() for a in result.answers],
            score=result.score,
            raw_score=result.raw_score,
            total_points=result.total_points,
            earned_points=result.earned_points,
            total_weighted_points=result.total_weighted_points,
            earned_weighted_points=result.earned_weighted_points,
            passed=passed,
            time_spent=time_spent,
            completed_at=now,
            is_completed=True,
        )
    )
    submitted = closed.rowcount
    await db.commit()
    await db.refresh(attempt)
    if not submitted:
        return attempt

    logger.info(
        "Quiz attempt submitted: user %s, quiz %s, score %s%% (raw %s%%)",
        user_id,
        quiz_id,
        result.score,
        result.raw_score,
    )
    if passed:
        await award_quiz_achievements(
            db, user_id, quiz_id, course_id, result.score, settings
        )
    if lesson_id:
        await update_lesson_progress(db, user_id, lesson_id, now=now)
    await db.refresh(attempt)
    return attempt


async def list_attempts(
    db: AsyncSession, user_id: int, quiz_id: int | None = None
) -> list[QuizAttempt]:
    query = select(QuizAttempt).where(QuizAttempt.user_id == user_id)
    if quiz_id is not None:
        query = query.where(QuizAttempt.quiz_id == quiz_id)
    result = await db.execute(
        query.order_by(QuizAttempt.quiz_id, QuizAttempt.attempt_number)
    )
    return result.scalars().all()


async def get_best_attempt(
    db: AsyncSession, user_id: int, quiz_id: int
) -> QuizAttempt | None:
    result = await db.execute(
        select(QuizAttempt)
        .where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == AttemptStatus.SUBMITTED.value,
        )
        .order_by(QuizAttempt.score.desc(), QuizAttempt.attempt_number)
    )
    return result.scalars().first()


# --- Lesson progress --------------------------------------------------------


async def get_progress(db: AsyncSession, user_id: int, lesson_id: int) -> Progress | None:
    result = await db.execute(
        select(Progress).where(
            Progress.user_id == user_id, Progress.lesson_id == lesson_id
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_progress(
    db: AsyncSession, user_id: int, lesson_id: int, course_id: int
) -> Progress:
    progress = await get_progress(db, user_id, lesson_id)
    if progress:
        return progress
    progress = Progress(user_id=user_id, lesson_id=lesson_id, course_id=course_id)
    db.add(progress)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return await get_progress(db, user_id, lesson_id)
    await db.refresh(progress)
    return progress


async def update_lesson_progress(
    db: AsyncSession,
    user_id: int,
    lesson_id: int,
    time_spent: int | None = None,
    completion_percentage: float | None = None,
    last_position: float | None = None,
    now: datetime | None = None,
) -> tuple[Progress, CompletionResult]:
    """Record new progress signals and persist the completion decision.

    Only forward transitions are stored: once COMPLETED, a later report
    with lower numbers leaves the stored values and status alone.
    """

    now = now or datetime.utcnow()
    lesson = await get_lesson(db, lesson_id)
    if not lesson:
        raise NotFound("Lesson not found")
    lesson_type, course_id = lesson.type, lesson.course_id
    if completion_percentage is not None and not 0 <= completion_percentage <= 100:
        raise ValidationError("completion_percentage must be between 0 and 100")
    if time_spent is not None and time_spent < 0:
        raise ValidationError("time_spent cannot be negative")

    progress = await get_or_create_progress(db, user_id, lesson_id, course_id)
    settings = await get_settings(db)
    signals = ProgressSignals(
        time_spent=progress.time_spent if time_spent is None else time_spent,
        completion_percentage=(
            progress.completion_percentage
            if completion_percentage is None
            else completion_percentage
        ),
        last_position=progress.last_position if last_position is None else last_position,
    )

    quiz = best = None
    if lesson_type == LessonType.QUIZ:
        quiz = await get_quiz_for_lesson(db, lesson_id)
        if quiz:
            best = await get_best_attempt(db, user_id, quiz.id)
    result = evaluate_lesson(
        lesson_type,
        signals,
        settings,
        current_status=progress.status,
        completed_at=progress.completed_at,
        best_attempt=best,
        passing_score=quiz.passing_score if quiz else None,
        quiz_found=quiz is not None,
        now=now,
    )

    was_complete = progress.status == ProgressStatus.COMPLETED
    if was_complete:
        progress.time_spent = max(progress.time_spent, signals.time_spent)
        progress.last_position = max(progress.last_position, signals.last_position)
    else:
        progress.time_spent = signals.time_spent
        progress.last_position = signals.last_position
        progress.completion_percentage = result.progress
        progress.status = result.status.value
        if result.is_complete:
            progress.completed_at = result.completed_at or now
    progress.updated_at = now
    db.add(progress)
    await db.commit()
    await db.refresh(progress)

    if result.is_complete and not was_complete:
        logger.info("Lesson %s completed by user %s", lesson_id, user_id)
    await recompute_enrollment_progress(db, user_id, course_id, now=now)
    await db.refresh(progress)
    return progress, result


async def get_completed_lesson_ids(
    db: AsyncSession, user_id: int, course_id: int
) -> list[int]:
    result = await db.execute(
        select(Progress.lesson_id).where(
            Progress.user_id == user_id,
            Progress.course_id == course_id,
            Progress.status == ProgressStatus.COMPLETED.value,
        )
    )
    return list(result.scalars().all())


async def calculate_course_completion(
    db: AsyncSession, user_id: int, course_id: int
) -> CourseCompletion:
    """Recompute course progress from scratch; nothing is cached."""

    lessons = await get_published_lessons(db, course_id)
    completed = await get_completed_lesson_ids(db, user_id, course_id)
    return summarize_course_completion(lessons, completed)


async def recompute_enrollment_progress(
    db: AsyncSession, user_id: int, course_id: int, now: datetime | None = None
) -> Enrollment | None:
    """Write the freshly computed course progress back to the enrollment."""

    enrollment = await get_enrollment(db, user_id, course_id)
    if not enrollment:
        return None
    completion = await calculate_course_completion(db, user_id, course_id)
    enrollment.progress = completion.progress
    enrollment.completed_lessons = list(completion.completed_lesson_ids)
    just_completed = (
        completion.is_complete and enrollment.status == EnrollmentStatus.ACTIVE
    )
    if just_completed:
        enrollment.status = EnrollmentStatus.COMPLETED.value
        enrollment.completed_at = now or datetime.utcnow()
    enrollment = await save_enrollment(db, enrollment)
    if just_completed:
        logger.info("User %s completed course %s", user_id, course_id)
        await award_achievement(
            db,
            user_id,
            BadgeType.COURSE_COMPLETER,
            course_id=course_id,
            details={"course_id": course_id},
        )
        await db.refresh(enrollment)
    return enrollment


# --- Certificates and eligibility -----------------------------------------


async def get_valid_certificate(
    db: AsyncSession, user_id: int, course_id: int
) -> Certificate | None:
    result = await db.execute(
        select(Certificate).where(
            Certificate.user_id == user_id,
            Certificate.course_id == course_id,
            Certificate.is_valid == True,  # noqa: E712
        )
    )
    return result.scalars().first()


async def get_certificate(db: AsyncSession, certificate_pk: int) -> Certificate | None:
    return await db.get(Certificate, certificate_pk)


async def find_certificate(db: AsyncSession, identifier: str) -> Certificate | None:
    """Look a certificate up by certificate id or verification code."""
    result = await db.execute(
        select(Certificate).where(
            (Certificate.certificate_id == identifier)
            | (Certificate.verification_code == identifier)
        )
    )
    return result.scalars().first()


async def get_user_certificates(db: AsyncSession, user_id: int) -> list[Certificate]:
    result = await db.execute(
        select(Certificate)
        .where(Certificate.user_id == user_id, Certificate.is_valid == True)  # noqa: E712
        .order_by(Certificate.issued_at.desc())
    )
    return result.scalars().all()


async def get_valid_certificates(
    db: AsyncSession, course_id: Optional[int] = None
) -> list[Certificate]:
    query = select(Certificate).where(Certificate.is_valid == True)  # noqa: E712
    if course_id is not None:
        query = query.where(Certificate.course_id == course_id)
    result = await db.execute(query.order_by(Certificate.id))
    return result.scalars().all()


async def get_pending_certificates(db: AsyncSession) -> list[Certificate]:
    """Valid certificates still waiting for an artifact, FAILED ones included."""
    result = await db.execute(
        select(Certificate)
        .where(
            Certificate.status.in_(
                [CertificateStatus.PENDING.value, CertificateStatus.FAILED.value]
            ),
            Certificate.is_valid == True,  # noqa: E712
        )
        .order_by(Certificate.id)
    )
    return result.scalars().all()


async def save_certificate(db: AsyncSession, certificate: Certificate) -> Certificate:
    db.add(certificate)
    await db.commit()
    await db.refresh(certificate)
    return certificate


async def get_quiz_summaries(
    db: AsyncSession, user_id: int, course_id: int
) -> list[QuizSummary]:
    """Best score, pass flag and attempt count per published course quiz."""

    quizzes = await get_quizzes_for_course(db, course_id)
    result = await db.execute(
        select(QuizAttempt).where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.course_id == course_id,
            QuizAttempt.status == AttemptStatus.SUBMITTED.value,
        )
    )
    attempts = result.scalars().all()
    summaries = []
    for quiz in quizzes:
        mine = [a for a in attempts if a.quiz_id == quiz.id]
        summaries.append(
            QuizSummary(
                quiz_id=quiz.id,
                title=quiz.title,
                required=quiz.is_required,
                passed=any(a.passed for a in mine),
                best_score=max((a.score for a in mine), default=0),
                attempts=len(mine),
            )
        )
    return summaries


async def calculate_course_time_spent(
    db: AsyncSession, user_id: int, course_id: int
) -> float:
    """Study time in minutes, estimated where no time was tracked."""

    result = await db.execute(
        select(Progress, Lesson)
        .join(Lesson, Lesson.id == Progress.lesson_id)
        .where(Progress.user_id == user_id, Progress.course_id == course_id)
    )
    records = result.all()
    counts = await db.execute(
        select(Quiz.lesson_id, func.count(QuizQuestion.id))
        .join(QuizQuestion, QuizQuestion.quiz_id == Quiz.id)
        .where(Quiz.course_id == course_id, Quiz.lesson_id != None)  # noqa: E711
        .group_by(Quiz.lesson_id)
    )
    question_counts = {lesson_id: count for lesson_id, count in counts.all()}
    return estimate_time_spent([(p, l) for p, l in records], question_counts)


async def check_certificate_eligibility(
    db: AsyncSession, user_id: int, course_id: int
) -> EligibilityResult:
    """Gather every eligibility signal and evaluate all checks.

    The enrollment's progress is recomputed from the published lessons
    first, so lessons added after the learner finished count against it.
    """

    if not await get_course(db, course_id):
        raise NotFound("Course not found")
    enrollment = await recompute_enrollment_progress(db, user_id, course_id)
    course = await get_course(db, course_id)
    settings = await get_settings(db)
    return analyze_eligibility(
        course=course,
        enrollment=enrollment,
        has_valid_certificate=await get_valid_certificate(db, user_id, course_id)
        is not None,
        time_spent=await calculate_course_time_spent(db, user_id, course_id),
        quizzes=await get_quiz_summaries(db, user_id, course_id),
        min_time_fraction=settings.min_time_fraction,
    )
