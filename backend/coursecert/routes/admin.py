"""Admin endpoints: certificate sweeps, statistics and policy settings."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coursecert.auth import require_role
from coursecert.certification import (
    get_certificate_stats,
    notify_certificates,
    regenerate_certificates,
    retry_pending_certificates,
    send_certificate_reminders,
)
from coursecert.collaborators import get_notifiers, get_renderer
from coursecert.crud import get_settings, save_settings
from coursecert.database import get_session
from coursecert.models import User
from coursecert.schemas import CertificateBulkNotify, SettingsRead, SettingsUpdate

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/certificates/retry")
async def admin_retry_certificates(
    max_attempts: Optional[int] = Query(None, ge=1, le=10),
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
    renderer=Depends(get_renderer),
    notifiers=Depends(get_notifiers),
):
    """Retry artifact generation for every PENDING or FAILED certificate."""
    return await retry_pending_certificates(db, renderer, notifiers, max_attempts)


@router.post("/certificates/regenerate")
async def admin_regenerate_certificates(
    course_id: Optional[int] = None,
    template: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
    renderer=Depends(get_renderer),
):
    return await regenerate_certificates(db, renderer, course_id, template)


@router.post("/certificates/notify")
async def admin_notify_certificates(
    data: CertificateBulkNotify,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
    notifiers=Depends(get_notifiers),
):
    return await notify_certificates(db, data.certificate_ids, notifiers)


@router.post("/certificates/reminders")
async def admin_send_reminders(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
    notifiers=Depends(get_notifiers),
):
    return await send_certificate_reminders(db, notifiers)


@router.get("/certificates/stats")
async def admin_certificate_stats(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    return await get_certificate_stats(db)


@router.get("/settings", response_model=SettingsRead)
async def admin_read_settings(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    return await get_settings(db)


@router.put("/settings", response_model=SettingsRead)
async def admin_update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Update policy settings; only admins may change configuration."""
    settings = await get_settings(db)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(settings, field, value)
    return await save_settings(db, settings)
