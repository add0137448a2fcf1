"""Quiz authoring and the learner's attempt lifecycle."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursecert.auth import get_current_user, require_role
from coursecert.certification import issue_if_completed
from coursecert.collaborators import get_notifiers, get_renderer
from coursecert.crud import (
    create_quiz,
    get_attempt,
    get_course,
    get_lesson,
    get_quiz,
    get_quiz_questions,
    list_attempts,
    start_attempt,
    submit_attempt,
)
from coursecert.database import get_session
from coursecert.errors import NotFound, ValidationError
from coursecert.models import LessonType, Quiz, QuizAttempt, User
from coursecert.randomization import frozen_questions, instructor_question, public_question
from coursecert.schemas import (
    AttemptResult,
    AttemptSubmit,
    AttemptView,
    QuizCreate,
    QuizInstructorView,
    QuizRead,
)

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


async def _attempt_view(db: AsyncSession, attempt: QuizAttempt, quiz: Quiz) -> AttemptView:
    """Serve the frozen questions in the order and option order of the attempt."""
    questions = frozen_questions(
        await get_quiz_questions(db, quiz.id), attempt.question_order
    )
    return AttemptView(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        attempt_number=attempt.attempt_number,
        status=attempt.status,
        started_at=attempt.started_at,
        time_limit=quiz.time_limit,
        questions=[
            public_question(q, attempt.option_order.get(str(q.id))) for q in questions
        ],
    )


def _attempt_result(attempt: QuizAttempt, quiz: Quiz) -> AttemptResult:
    result = AttemptResult.model_validate(attempt)
    if not quiz.show_correct_answers:
        result.answers = None
    return result


@router.post("/", response_model=QuizRead, status_code=status.HTTP_201_CREATED)
async def add_quiz(
    data: QuizCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("instructor", "admin")),
):
    if not await get_course(db, data.course_id):
        raise NotFound("Course not found")
    if data.lesson_id is not None:
        lesson = await get_lesson(db, data.lesson_id)
        if not lesson or lesson.course_id != data.course_id:
            raise NotFound("Lesson not found")
        if lesson.type != LessonType.QUIZ:
            raise ValidationError("Quizzes can only be bound to QUIZ lessons")
    quiz = Quiz(**data.model_dump(exclude={"questions"}))
    return await create_quiz(db, quiz, data.questions)


@router.get("/{quiz_id}", response_model=QuizInstructorView)
async def read_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("instructor", "admin")),
):
    """Instructor view including correct answers and explanations."""
    quiz = await get_quiz(db, quiz_id)
    if not quiz:
        raise NotFound("Quiz not found")
    questions = await get_quiz_questions(db, quiz_id)
    return QuizInstructorView(
        **QuizRead.model_validate(quiz).model_dump(),
        questions=[instructor_question(q) for q in questions],
    )


@router.post("/{quiz_id}/attempts", response_model=AttemptView)
async def begin_attempt(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Start an attempt, or resume the learner's open one."""
    attempt = await start_attempt(db, current_user.id, quiz_id)
    quiz = await get_quiz(db, quiz_id)
    return await _attempt_view(db, attempt, quiz)


@router.get("/{quiz_id}/attempts", response_model=list[AttemptResult])
async def my_attempts(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    quiz = await get_quiz(db, quiz_id)
    if not quiz:
        raise NotFound("Quiz not found")
    attempts = await list_attempts(db, current_user.id, quiz_id)
    return [_attempt_result(a, quiz) for a in attempts]


@router.get("/attempts/{attempt_id}", response_model=AttemptView)
async def read_attempt(
    attempt_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    attempt = await get_attempt(db, attempt_id)
    if not attempt or attempt.user_id != current_user.id:
        raise NotFound("Quiz attempt not found")
    quiz = await get_quiz(db, attempt.quiz_id)
    return await _attempt_view(db, attempt, quiz)


@router.post("/attempts/{attempt_id}/submit", response_model=AttemptResult)
async def submit(
    attempt_id: int,
    data: AttemptSubmit,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    renderer=Depends(get_renderer),
    notifiers=Depends(get_notifiers),
):
    user_id = current_user.id
    attempt = await submit_attempt(
        db,
        attempt_id,
        user_id,
        [a.model_dump() for a in data.answers],
        data.time_spent,
    )
    quiz_id, course_id = attempt.quiz_id, attempt.course_id
    await issue_if_completed(db, user_id, course_id, renderer, notifiers)
    quiz = await get_quiz(db, quiz_id)
    attempt = await get_attempt(db, attempt_id)
    return _attempt_result(attempt, quiz)
