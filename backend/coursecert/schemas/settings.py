"""Pydantic models for the tunable completion and certification policy."""

from pydantic import BaseModel, Field


class SettingsRead(BaseModel):
    site_name: str
    min_text_time_seconds: int
    min_video_watch_percentage: int
    quiz_grace_period_seconds: int
    min_time_fraction: float
    certificate_retry_limit: int
    quiz_master_threshold: int
    reminder_days: int
    verification_prefix: str

    model_config = {"from_attributes": True}


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    min_text_time_seconds: int | None = Field(default=None, ge=0)
    min_video_watch_percentage: int | None = Field(default=None, ge=0, le=100)
    quiz_grace_period_seconds: int | None = Field(default=None, ge=0)
    min_time_fraction: float | None = Field(default=None, ge=0, le=1)
    certificate_retry_limit: int | None = Field(default=None, ge=1)
    quiz_master_threshold: int | None = Field(default=None, ge=1)
    reminder_days: int | None = Field(default=None, ge=1)
    verification_prefix: str | None = Field(default=None, min_length=1, max_length=8)
