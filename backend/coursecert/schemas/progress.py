"""Models for lesson progress updates and course completion."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ProgressUpdate(BaseModel):
    time_spent: Optional[int] = Field(default=None, ge=0)
    completion_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    last_position: Optional[float] = Field(default=None, ge=0)


class ProgressRead(BaseModel):
    lesson_id: int
    course_id: int
    status: str
    time_spent: int
    completion_percentage: float
    last_position: float
    completed_at: Optional[datetime] = None
    is_complete: bool
    reason: Optional[str] = None
    next_requirements: List[str] = Field(default_factory=list)
    course_progress: Optional[int] = None
