"""Lesson progress reporting and course completion."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursecert.aggregation import CourseCompletion
from coursecert.auth import get_current_user
from coursecert.certification import issue_if_completed
from coursecert.collaborators import get_notifiers, get_renderer
from coursecert.crud import (
    calculate_course_completion,
    enroll_user,
    get_course,
    get_enrollment,
    update_lesson_progress,
)
from coursecert.database import get_session
from coursecert.errors import NotFound
from coursecert.models import User
from coursecert.schemas import ProgressRead, ProgressUpdate

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/courses/{course_id}/enroll")
async def enroll(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not await get_course(db, course_id):
        raise NotFound("Course not found")
    return await enroll_user(db, current_user.id, course_id)


@router.put("/lessons/{lesson_id}", response_model=ProgressRead)
async def report_progress(
    lesson_id: int,
    data: ProgressUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    renderer=Depends(get_renderer),
    notifiers=Depends(get_notifiers),
):
    """Record time, percentage and position reported by the lesson player."""

    user_id = current_user.id
    progress, result = await update_lesson_progress(
        db,
        user_id,
        lesson_id,
        time_spent=data.time_spent,
        completion_percentage=data.completion_percentage,
        last_position=data.last_position,
    )
    response = ProgressRead(
        lesson_id=progress.lesson_id,
        course_id=progress.course_id,
        status=progress.status,
        time_spent=progress.time_spent,
        completion_percentage=progress.completion_percentage,
        last_position=progress.last_position,
        completed_at=progress.completed_at,
        is_complete=result.is_complete,
        reason=result.reason,
        next_requirements=result.next_requirements,
    )
    enrollment = await get_enrollment(db, user_id, response.course_id)
    if enrollment:
        response.course_progress = enrollment.progress
        await issue_if_completed(db, user_id, response.course_id, renderer, notifiers)
    return response


@router.get("/courses/{course_id}", response_model=CourseCompletion)
async def course_completion(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not await get_course(db, course_id):
        raise NotFound("Course not found")
    return await calculate_course_completion(db, current_user.id, course_id)
