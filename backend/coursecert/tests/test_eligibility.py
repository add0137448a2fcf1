"""Tests for certificate eligibility analysis."""

import asyncio
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert.certification import issue_certificate
from coursecert.crud import (
    check_certificate_eligibility,
    create_lesson,
    get_enrollment,
    start_attempt,
    submit_attempt,
    update_lesson_progress,
)
from coursecert.eligibility import (
    QuizSummary,
    analyze_eligibility,
    estimate_lesson_minutes,
    estimate_time_spent,
)
from coursecert.errors import PolicyViolation
from coursecert.models import Course, Enrollment, Lesson, Progress
from coursecert.tests.factories import (
    MemoryRenderer,
    correct_answers,
    seed_course,
    setup_db,
    wrong_answers,
)


def _required_quiz(passed, score):
    return QuizSummary(
        quiz_id=1, title="Final", required=True, passed=passed, best_score=score, attempts=1
    )


def test_all_failing_checks_are_reported():
    result = analyze_eligibility(
        course=Course(title="Astro", estimated_completion_time=60),
        enrollment=Enrollment(user_id=1, course_id=1, progress=50),
        has_valid_certificate=False,
        time_spent=40,
        quizzes=[_required_quiz(False, 40)],
    )
    assert not result.eligible
    assert not result.requirements.course_completed
    assert not result.requirements.required_quizzes_passed
    assert result.requirements.minimum_time_spent
    assert result.missing_requirements == [
        "Course completion required (50% completed)",
        "Required quizzes must be passed (0/1 passed)",
    ]
    assert result.reason == "; ".join(result.missing_requirements)


def test_eligible_learner():
    result = analyze_eligibility(
        course=Course(title="Astro", estimated_completion_time=60, minimum_average_score=80),
        enrollment=Enrollment(user_id=1, course_id=1, progress=100),
        has_valid_certificate=False,
        time_spent=31,
        quizzes=[_required_quiz(True, 85)],
    )
    assert result.eligible
    assert result.reason is None
    assert result.missing_requirements == []
    assert result.details.average_score == 85


def test_duplicate_dropped_time_and_score_checks():
    result = analyze_eligibility(
        course=Course(title="Astro", estimated_completion_time=100, minimum_average_score=90),
        enrollment=Enrollment(user_id=1, course_id=1, progress=100, status="DROPPED"),
        has_valid_certificate=True,
        time_spent=20,
        quizzes=[_required_quiz(True, 75)],
    )
    assert result.missing_requirements == [
        "Certificate already issued for this course",
        "Valid enrollment required",
        "Minimum study time required: 50 minutes (current: 20 minutes)",
        "Minimum average score required: 90% (current: 75%)",
    ]


def test_missing_enrollment():
    result = analyze_eligibility(
        course=Course(title="Astro"),
        enrollment=None,
        has_valid_certificate=False,
        time_spent=0,
        quizzes=[],
    )
    assert result.missing_requirements == [
        "Valid enrollment required",
        "Course completion required (0% completed)",
    ]


def test_time_estimates_per_lesson_type():
    assert estimate_lesson_minutes(Lesson(course_id=1, title="t", type="TEXT", content="x" * 100)) == 2
    assert estimate_lesson_minutes(Lesson(course_id=1, title="t", type="TEXT", content="x" * 2000)) == 5
    assert estimate_lesson_minutes(Lesson(course_id=1, title="v", type="VIDEO")) == 7
    assert estimate_lesson_minutes(Lesson(course_id=1, title="v", type="VIDEO", video_duration=12)) == 12
    assert estimate_lesson_minutes(Lesson(course_id=1, title="q", type="QUIZ"), 4) == 6
    assert estimate_lesson_minutes(Lesson(course_id=1, title="q", type="QUIZ"), 10) == 8


def test_tracked_time_wins_over_estimate():
    lesson = Lesson(id=1, course_id=1, title="v", type="VIDEO", video_duration=12)
    tracked = Progress(user_id=1, lesson_id=1, course_id=1, time_spent=300, status="COMPLETED")
    untracked = Progress(user_id=1, lesson_id=1, course_id=1, status="COMPLETED")
    started = Progress(user_id=1, lesson_id=1, course_id=1, status="IN_PROGRESS")
    assert estimate_time_spent([(tracked, lesson)]) == 5
    assert estimate_time_spent([(untracked, lesson)]) == 12
    assert estimate_time_spent([(started, lesson)]) == 0


def test_learner_failing_progress_and_quiz_checks():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            await update_lesson_progress(
                session, ids["user_id"], ids["text_id"], time_spent=60, completion_percentage=100
            )
            attempt = await start_attempt(session, ids["user_id"], ids["quiz_id"])
            await submit_attempt(session, attempt.id, ids["user_id"], wrong_answers(ids), 30)

            result = await check_certificate_eligibility(session, ids["user_id"], ids["course_id"])
            assert not result.eligible
            assert result.details.progress == 33
            assert result.missing_requirements == [
                "Course completion required (33% completed)",
                "Required quizzes must be passed (0/1 passed)",
            ]
            assert result.details.quizzes[0].attempts == 1
            assert result.details.quizzes[0].best_score == 0

    asyncio.run(run())


def test_learner_who_finished_everything_is_eligible():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session, estimated_completion_time=4)
            await update_lesson_progress(
                session, ids["user_id"], ids["text_id"], time_spent=60, completion_percentage=100
            )
            await update_lesson_progress(
                session, ids["user_id"], ids["video_id"], time_spent=60, completion_percentage=95
            )
            attempt = await start_attempt(session, ids["user_id"], ids["quiz_id"])
            await submit_attempt(session, attempt.id, ids["user_id"], correct_answers(ids), 30)

            result = await check_certificate_eligibility(session, ids["user_id"], ids["course_id"])
            assert result.eligible, result.reason
            assert result.details.progress == 100
            assert result.details.time_spent >= 2

    asyncio.run(run())


def test_lesson_published_after_completion_blocks_the_certificate():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            ids = await seed_course(session)
            uid, cid = ids["user_id"], ids["course_id"]
            await update_lesson_progress(
                session, uid, ids["text_id"], time_spent=60, completion_percentage=100
            )
            await update_lesson_progress(session, uid, ids["video_id"], completion_percentage=95)
            attempt = await start_attempt(session, uid, ids["quiz_id"])
            await submit_attempt(session, attempt.id, uid, correct_answers(ids), 30)
            assert (await get_enrollment(session, uid, cid)).progress == 100

            await create_lesson(
                session, Lesson(course_id=cid, title="Bonus", type="TEXT", order=4)
            )
            result = await check_certificate_eligibility(session, uid, cid)
            assert not result.eligible
            assert result.details.progress == 75
            assert result.missing_requirements == ["Course completion required (75% completed)"]
            assert (await get_enrollment(session, uid, cid)).progress == 75

            with pytest.raises(PolicyViolation):
                await issue_certificate(session, uid, cid, MemoryRenderer())

    asyncio.run(run())
