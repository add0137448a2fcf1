"""Tests for persisted lesson progress and enrollment roll-up."""

import asyncio
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert.crud import (
    calculate_course_completion,
    create_lesson,
    get_enrollment,
    get_user_achievements,
    start_attempt,
    submit_attempt,
    update_lesson_progress,
)
from coursecert.errors import NotFound, ValidationError
from coursecert.models import Lesson
from coursecert.tests.factories import correct_answers, seed_course, setup_db


def test_text_lesson_progress_is_forward_only():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            uid = ids["user_id"]
            progress, result = await update_lesson_progress(
                session, uid, ids["text_id"], time_spent=45, completion_percentage=100
            )
            assert result.is_complete
            assert progress.status == "COMPLETED"
            completed_at = progress.completed_at

            progress, result = await update_lesson_progress(
                session, uid, ids["text_id"], time_spent=10, completion_percentage=20
            )
            assert result.is_complete
            assert progress.status == "COMPLETED"
            assert progress.time_spent == 45
            assert progress.completion_percentage == 100
            assert progress.completed_at == completed_at

    asyncio.run(run())


def test_video_lesson_below_threshold():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            progress, result = await update_lesson_progress(
                session, ids["user_id"], ids["video_id"], completion_percentage=85, last_position=510
            )
            assert progress.status == "IN_PROGRESS"
            assert progress.completion_percentage == 85
            assert progress.last_position == 510
            assert result.next_requirements == ["Watch 90% of the video"]

    asyncio.run(run())


def test_partial_reports_keep_previous_signals():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            uid = ids["user_id"]
            await update_lesson_progress(session, uid, ids["text_id"], time_spent=40)
            progress, result = await update_lesson_progress(
                session, uid, ids["text_id"], completion_percentage=100
            )
            assert progress.time_spent == 40
            assert result.is_complete

    asyncio.run(run())


def test_enrollment_follows_course_progress():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            uid, cid = ids["user_id"], ids["course_id"]
            await update_lesson_progress(
                session, uid, ids["text_id"], time_spent=60, completion_percentage=100
            )
            await update_lesson_progress(session, uid, ids["video_id"], completion_percentage=92)
            enrollment = await get_enrollment(session, uid, cid)
            assert enrollment.progress == 66
            assert enrollment.status == "ACTIVE"

            attempt = await start_attempt(session, uid, ids["quiz_id"])
            await submit_attempt(session, attempt.id, uid, correct_answers(ids), 30)
            enrollment = await get_enrollment(session, uid, cid)
            assert enrollment.progress == 100
            assert enrollment.status == "COMPLETED"
            assert enrollment.completed_at is not None
            assert sorted(enrollment.completed_lessons) == sorted(
                [ids["text_id"], ids["video_id"], ids["quiz_lesson_id"]]
            )
            badges = {a.badge_type for a in await get_user_achievements(session, uid)}
            assert "COURSE_COMPLETER" in badges

            completion = await calculate_course_completion(session, uid, cid)
            assert completion.is_complete
            assert completion.text_lessons.completed == 1

    asyncio.run(run())


def test_new_lesson_lowers_course_progress():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            uid, cid = ids["user_id"], ids["course_id"]
            await update_lesson_progress(
                session, uid, ids["text_id"], time_spent=60, completion_percentage=100
            )
            await create_lesson(
                session, Lesson(course_id=cid, title="Extra", type="TEXT", order=4)
            )
            await create_lesson(
                session,
                Lesson(course_id=cid, title="Draft", type="TEXT", order=5, is_published=False),
            )
            completion = await calculate_course_completion(session, uid, cid)
            assert completion.total_lessons == 4
            assert completion.progress == 25

    asyncio.run(run())


def test_invalid_progress_reports():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            with pytest.raises(NotFound):
                await update_lesson_progress(session, ids["user_id"], 999, time_spent=5)
            with pytest.raises(ValidationError):
                await update_lesson_progress(
                    session, ids["user_id"], ids["text_id"], completion_percentage=140
                )

    asyncio.run(run())
