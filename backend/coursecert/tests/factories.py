"""Shared helpers for the database backed tests."""

import pathlib
import sys

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert.collaborators import RenderedArtifact
from coursecert.crud import (
    create_course,
    create_lesson,
    create_quiz,
    enroll_user,
    get_questions_for_quiz,
)
from coursecert.models import Course, Lesson, Quiz, User
from coursecert.questions import MultipleChoiceQuestion, TrueFalseQuestion


async def setup_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return async_sessionmaker(engine, expire_on_commit=False)


async def seed_course(session, quiz_options=None, estimated_completion_time=0):
    """Learner enrolled in a course with a text, a video and a quiz lesson."""

    learner = User(name="Ada Learner", email="ada@example.com", password_hash="x")
    session.add(learner)
    await session.commit()
    await session.refresh(learner)

    course = await create_course(
        session,
        Course(
            title="Intro to Astronomy",
            instructor_name="Dr. Vera",
            estimated_completion_time=estimated_completion_time,
            skills=["observation", "optics"],
        ),
    )
    text = await create_lesson(
        session,
        Lesson(course_id=course.id, title="Reading", type="TEXT", content="x" * 800, order=1),
    )
    video = await create_lesson(
        session,
        Lesson(course_id=course.id, title="Video", type="VIDEO", video_duration=10, order=2),
    )
    quiz_lesson = await create_lesson(
        session, Lesson(course_id=course.id, title="Check", type="QUIZ", order=3)
    )
    options = {"passing_score": 70, "is_required": True}
    options.update(quiz_options or {})
    quiz = await create_quiz(
        session,
        Quiz(course_id=course.id, lesson_id=quiz_lesson.id, title="Check quiz", **options),
        [
            MultipleChoiceQuestion(
                prompt="Closest star?", options=["Sun", "Sirius", "Vega"], correct_answer="Sun", points=10
            ),
            TrueFalseQuestion(prompt="The Moon emits light.", correct_answer="false", points=10, order=2),
        ],
    )
    await enroll_user(session, learner.id, course.id)
    questions = await get_questions_for_quiz(session, quiz.id)
    return {
        "user_id": learner.id,
        "course_id": course.id,
        "text_id": text.id,
        "video_id": video.id,
        "quiz_lesson_id": quiz_lesson.id,
        "quiz_id": quiz.id,
        "question_ids": [q.id for q in questions],
    }


def correct_answers(ids):
    first, second = ids["question_ids"]
    return [
        {"question_id": first, "user_answer": "Sun"},
        {"question_id": second, "user_answer": "false"},
    ]


def wrong_answers(ids):
    first, second = ids["question_ids"]
    return [
        {"question_id": first, "user_answer": "Vega"},
        {"question_id": second, "user_answer": "true"},
    ]


class FailingRenderer:
    def __init__(self):
        self.calls = 0

    async def generate(self, certificate_data, options):
        self.calls += 1
        raise RuntimeError("renderer down")


class FlakyRenderer:
    """Fails the first ``failures`` calls, then renders like MemoryRenderer."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def generate(self, certificate_data, options):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("renderer down")
        return RenderedArtifact(
            path=f"/tmp/{certificate_data['certificate_id']}.txt", file_size=123
        )


class MemoryRenderer:
    """Renderer that writes nothing and reports a fake location."""

    def __init__(self):
        self.rendered = []

    async def generate(self, certificate_data, options):
        self.rendered.append(certificate_data)
        return RenderedArtifact(
            path=f"/tmp/{certificate_data['certificate_id']}.txt", file_size=123
        )


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def notify(self, event, payload):
        self.events.append((event, payload))


class FailingNotifier:
    async def notify(self, event, payload):
        raise ConnectionError("mail server unavailable")
