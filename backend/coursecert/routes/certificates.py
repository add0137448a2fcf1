"""Certificate eligibility, issuance, download and public verification."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from coursecert.auth import get_current_user, require_role
from coursecert.certification import (
    VerificationResult,
    issue_certificate,
    record_download,
    revoke_certificate,
    verify_certificate,
)
from coursecert.collaborators import get_notifiers, get_renderer
from coursecert.crud import check_certificate_eligibility, get_user_certificates
from coursecert.database import get_session
from coursecert.eligibility import EligibilityResult
from coursecert.models import User
from coursecert.schemas import CertificateIssue, CertificateRead, CertificateRevoke

router = APIRouter(prefix="/certificates", tags=["certificates"])


@router.get("/eligibility/{course_id}", response_model=EligibilityResult)
async def eligibility(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await check_certificate_eligibility(db, current_user.id, course_id)


@router.post("/", response_model=CertificateRead, status_code=status.HTTP_201_CREATED)
async def issue(
    data: CertificateIssue,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    renderer=Depends(get_renderer),
    notifiers=Depends(get_notifiers),
):
    """Issue the learner's certificate; a second request is rejected."""
    return await issue_certificate(
        db, current_user.id, data.course_id, renderer, notifiers, template=data.template
    )


@router.get("/mine", response_model=list[CertificateRead])
async def my_certificates(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await get_user_certificates(db, current_user.id)


@router.get("/verify/{verification_code}", response_model=VerificationResult)
async def verify(verification_code: str, db: AsyncSession = Depends(get_session)):
    """Public endpoint; no login needed."""
    return await verify_certificate(db, verification_code)


@router.get("/{certificate_pk}/download")
async def download(
    certificate_pk: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
    renderer=Depends(get_renderer),
):
    certificate = await record_download(db, certificate_pk, current_user.id, renderer)
    return FileResponse(
        certificate.artifact_path,
        filename=f"{certificate.certificate_id}.txt",
    )


@router.post("/{certificate_pk}/revoke", response_model=CertificateRead)
async def revoke(
    certificate_pk: int,
    data: CertificateRevoke,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    return await revoke_certificate(db, certificate_pk, data.reason)
