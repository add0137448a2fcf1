"""Roll per-lesson completion up to course level."""

from typing import Iterable

from pydantic import BaseModel, Field

from coursecert.models import Lesson, LessonType


class TypeBreakdown(BaseModel):
    total: int = 0
    completed: int = 0


class CourseCompletion(BaseModel):
    total_lessons: int
    completed_lessons: int
    progress: int
    is_complete: bool
    completed_lesson_ids: list[int] = Field(default_factory=list)
    text_lessons: TypeBreakdown = Field(default_factory=TypeBreakdown)
    video_lessons: TypeBreakdown = Field(default_factory=TypeBreakdown)
    quiz_lessons: TypeBreakdown = Field(default_factory=TypeBreakdown)


_BREAKDOWN_FIELD = {
    LessonType.TEXT.value: "text_lessons",
    LessonType.VIDEO.value: "video_lessons",
    LessonType.QUIZ.value: "quiz_lessons",
}


def summarize_course_completion(
    lessons: Iterable[Lesson], completed_lesson_ids: Iterable[int]
) -> CourseCompletion:
    """Compute course progress from published lessons and completed ids.

    Progress is floored so a course only reads 100% once every lesson is
    done.  Completed ids that do not belong to ``lessons`` (unpublished or
    removed lessons) are ignored.
    """

    lessons = list(lessons)
    done = set(completed_lesson_ids)
    summary = CourseCompletion(
        total_lessons=len(lessons), completed_lessons=0, progress=0, is_complete=False
    )
    for lesson in lessons:
        is_done = lesson.id in done
        if is_done:
            summary.completed_lessons += 1
            summary.completed_lesson_ids.append(lesson.id)
        field = _BREAKDOWN_FIELD.get(lesson.type)
        if field:
            bucket = getattr(summary, field)
            bucket.total += 1
            if is_done:
                bucket.completed += 1
    if summary.total_lessons:
        summary.progress = summary.completed_lessons * 100 // summary.total_lessons
    summary.is_complete = summary.progress == 100
    return summary
