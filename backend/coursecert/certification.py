"""Certificate issuance pipeline.

A certificate moves ``PENDING -> GENERATED``.  The row is committed as
PENDING before the artifact renderer runs, so a renderer failure leaves a
durable record that :func:`retry_pending_certificates` picks up later.
A sweep that uses up its tries on a certificate marks it FAILED; the
next sweep queues FAILED certificates again.
Notification failures are logged and never undo an issued certificate;
:func:`send_certificate_reminders` covers the ones that did not go out.
"""

import logging
import pathlib
import secrets
from datetime import datetime, timedelta
from typing import Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from coursecert import crud
from coursecert.collaborators import ArtifactRenderer, Notifier, verification_url
from coursecert.eligibility import EligibilityResult
from coursecert.errors import (
    DownstreamFailure,
    DuplicateError,
    NotFound,
    PolicyViolation,
)
from coursecert.models import Certificate, CertificateStatus, EnrollmentStatus

logger = logging.getLogger(__name__)

# Fresh codes are drawn again when a generated code is already taken.
CODE_GENERATION_ATTEMPTS = 5


class AutoIssueResult(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    generated: bool
    certificate: Optional[Certificate] = None
    reason: Optional[str] = None


class VerificationResult(BaseModel):
    valid: bool
    message: str
    certificate: Optional[dict] = None


def generate_verification_code(prefix: str, year: int) -> str:
    return f"{prefix}-{year}-{secrets.token_hex(4).upper()}"


def generate_certificate_id(year: int) -> str:
    return f"CERT-{year}-{secrets.randbelow(10**6):06d}"


def _is_code_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "verification_code" in message or "certificate_id" in message


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def certificate_data(certificate: Certificate) -> dict:
    """Fields handed to the artifact renderer."""
    return {
        "certificate_id": certificate.certificate_id,
        "verification_code": certificate.verification_code,
        "student_name": certificate.student_name,
        "course_name": certificate.course_name,
        "instructor_name": certificate.instructor_name,
        "completion_date": certificate.completion_date.date().isoformat(),
        "final_score": certificate.final_score,
        "skills": certificate.snapshot.get("course", {}).get("skills", []),
        "verification_url": verification_url(certificate.verification_code),
    }


def notification_payload(certificate: Certificate) -> dict:
    return {
        "user_id": certificate.user_id,
        "certificate_id": certificate.certificate_id,
        "verification_code": certificate.verification_code,
        "student_name": certificate.student_name,
        "course_name": certificate.course_name,
        "verification_url": verification_url(certificate.verification_code),
    }


async def build_snapshot(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    eligibility: EligibilityResult,
    now: datetime,
) -> dict:
    """Collect everything an issued certificate must remember as-is."""

    user = await crud.get_user(db, user_id)
    course = await crud.get_course(db, course_id)
    enrollment = await crud.get_enrollment(db, user_id, course_id)
    achievements = await crud.get_user_achievements(db, user_id)
    if not user or not course:
        raise NotFound("Learner or course not found")
    details = eligibility.details
    attempted = [q for q in details.quizzes if q.attempts]
    return {
        "student": {"id": user_id, "name": user.name, "email": user.email},
        "course": {
            "id": course_id,
            "title": course.title,
            "category": course.category,
            "level": course.level,
            "instructor_name": course.instructor_name,
            "estimated_completion_time": course.estimated_completion_time,
            "skills": list(course.skills or []),
        },
        "enrollment": {
            "enrolled_at": _iso(enrollment.enrolled_at) if enrollment else None,
            "completed_at": _iso(enrollment.completed_at) if enrollment else None,
        },
        "final_score": details.average_score if attempted else None,
        "time_spent": details.time_spent,
        "quiz_scores": [
            {
                "quiz_id": q.quiz_id,
                "title": q.title,
                "best_score": q.best_score,
                "passed": q.passed,
            }
            for q in details.quizzes
        ],
        "achievements": [a.badge_type for a in achievements],
        "issued_at": now.isoformat(),
    }


async def generate_artifact(
    db: AsyncSession,
    certificate: Certificate,
    renderer: ArtifactRenderer,
) -> bool:
    """Render the artifact once and record the outcome on the row.

    Any exception from the renderer counts as a retryable failure: the
    status is left alone and ``last_error`` records the cause.
    """

    certificate.generation_attempts += 1
    try:
        artifact = await renderer.generate(
            certificate_data(certificate), {"template": certificate.template}
        )
    except Exception as exc:
        logger.exception(
            "Artifact generation failed for certificate %s (attempt %s)",
            certificate.certificate_id,
            certificate.generation_attempts,
        )
        certificate.last_error = str(exc) or exc.__class__.__name__
        await crud.save_certificate(db, certificate)
        return False

    certificate.status = CertificateStatus.GENERATED.value
    certificate.artifact_path = artifact.path
    certificate.artifact_size = artifact.file_size
    certificate.last_error = None
    await crud.save_certificate(db, certificate)
    logger.info("Certificate %s generated at %s", certificate.certificate_id, artifact.path)
    return True


async def send_notifications(
    db: AsyncSession,
    certificate: Certificate,
    notifiers: Iterable[Notifier],
    event: str,
    now: datetime,
) -> list[str]:
    """Run every notifier; collect failures instead of raising them."""

    payload = notification_payload(certificate)
    errors = []
    for notifier in notifiers:
        try:
            await notifier.notify(event, payload)
        except Exception as exc:
            logger.exception(
                "Notification %s failed for certificate %s",
                event,
                payload["certificate_id"],
            )
            errors.append(str(exc) or exc.__class__.__name__)
            await db.rollback()
            await db.refresh(certificate)
    if not errors:
        certificate.notified_at = now
        await crud.save_certificate(db, certificate)
    return errors


async def issue_certificate(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    renderer: ArtifactRenderer,
    notifiers: Iterable[Notifier] = (),
    template: str = "standard",
    eligibility: EligibilityResult | None = None,
    now: datetime | None = None,
) -> Certificate:
    """Issue a certificate for a learner who completed a course.

    Raises ``DuplicateError`` when a valid certificate exists, both when the
    eligibility check sees it and when a concurrent issuance wins the
    insert.  Renderer and notifier failures do not raise.
    """

    now = now or datetime.utcnow()
    if eligibility is None:
        eligibility = await crud.check_certificate_eligibility(db, user_id, course_id)
    if not eligibility.requirements.no_duplicate_certificate:
        raise DuplicateError(
            "Certificate already issued for this course", code="certificate_exists"
        )
    if not eligibility.eligible:
        logger.warning(
            "User %s not eligible for a certificate in course %s: %s",
            user_id,
            course_id,
            eligibility.reason,
        )
        raise PolicyViolation(eligibility.reason, code="not_eligible")

    settings = await crud.get_settings(db)
    prefix = settings.verification_prefix
    snapshot = await build_snapshot(db, user_id, course_id, eligibility, now)
    enrollment = await crud.get_enrollment(db, user_id, course_id)
    completion_date = (enrollment.completed_at if enrollment else None) or now

    certificate = None
    for _ in range(CODE_GENERATION_ATTEMPTS):
        certificate = Certificate(
            user_id=user_id,
            course_id=course_id,
            verification_code=generate_verification_code(prefix, now.year),
            certificate_id=generate_certificate_id(now.year),
            template=template,
            issued_at=now,
            completion_date=completion_date,
            final_score=snapshot["final_score"],
            time_spent=snapshot["time_spent"],
            student_name=snapshot["student"]["name"],
            course_name=snapshot["course"]["title"],
            instructor_name=snapshot["course"]["instructor_name"],
            snapshot=snapshot,
        )
        db.add(certificate)
        try:
            await db.commit()
            break
        except IntegrityError as exc:
            await db.rollback()
            if not _is_code_collision(exc):
                logger.warning(
                    "Concurrent certificate issuance for user %s, course %s rejected",
                    user_id,
                    course_id,
                )
                raise DuplicateError(
                    "Certificate already issued for this course",
                    code="certificate_exists",
                )
            logger.info("Certificate code collision, drawing new codes")
    else:
        raise DuplicateError("Could not allocate unique certificate codes")

    await db.refresh(certificate)
    logger.info(
        "Certificate %s issued to user %s for course %s",
        certificate.certificate_id,
        user_id,
        course_id,
    )

    enrollment = await crud.get_enrollment(db, user_id, course_id)
    if enrollment:
        enrollment.certificate_issued = True
        await crud.save_enrollment(db, enrollment)

    if await generate_artifact(db, certificate, renderer):
        await send_notifications(db, certificate, notifiers, "certificate_issued", now)
    return certificate


async def trigger_automatic_certificate(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    renderer: ArtifactRenderer,
    notifiers: Iterable[Notifier] = (),
    now: datetime | None = None,
) -> AutoIssueResult:
    """Issue a certificate if the learner just became eligible."""

    eligibility = await crud.check_certificate_eligibility(db, user_id, course_id)
    if not eligibility.eligible:
        return AutoIssueResult(generated=False, reason=eligibility.reason)
    try:
        certificate = await issue_certificate(
            db,
            user_id,
            course_id,
            renderer,
            notifiers,
            eligibility=eligibility,
            now=now,
        )
    except DuplicateError as exc:
        return AutoIssueResult(generated=False, reason=exc.message)
    return AutoIssueResult(generated=True, certificate=certificate)


async def retry_pending_certificates(
    db: AsyncSession,
    renderer: ArtifactRenderer,
    notifiers: Iterable[Notifier] = (),
    max_attempts: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Retry generation for every PENDING or FAILED certificate.

    Each certificate gets up to ``max_attempts`` tries in this run
    (``certificate_retry_limit`` when not given), whatever earlier runs
    did.  A certificate that fails every try is marked FAILED until the
    next sweep.  One certificate failing does not stop the others.
    """

    now = now or datetime.utcnow()
    if max_attempts is None:
        settings = await crud.get_settings(db)
        max_attempts = settings.certificate_retry_limit
    notifiers = list(notifiers)
    report = {"success": 0, "failed": 0, "errors": []}
    # Notifier failures roll the session back, so rows are reloaded by id.
    pending = [c.id for c in await crud.get_pending_certificates(db)]
    for certificate_pk in pending:
        certificate = await crud.get_certificate(db, certificate_pk)
        generated = False
        for _ in range(max_attempts):
            generated = await generate_artifact(db, certificate, renderer)
            if generated:
                break
        if generated:
            report["success"] += 1
            await send_notifications(db, certificate, notifiers, "certificate_issued", now)
        else:
            certificate.status = CertificateStatus.FAILED.value
            await crud.save_certificate(db, certificate)
            logger.error(
                "Certificate %s still failing after %s tries in this sweep",
                certificate.certificate_id,
                max_attempts,
            )
            report["failed"] += 1
            report["errors"].append(
                {
                    "certificate_id": certificate.certificate_id,
                    "error": certificate.last_error,
                }
            )
    logger.info(
        "Certificate retry sweep: %s generated, %s failed",
        report["success"],
        report["failed"],
    )
    return report


async def regenerate_certificates(
    db: AsyncSession,
    renderer: ArtifactRenderer,
    course_id: int | None = None,
    template: str | None = None,
) -> dict:
    """Render the artifact again for every valid certificate.

    Limited to one course when ``course_id`` is given.  A new ``template``
    is stored on each certificate before rendering.  Certificates whose
    render fails keep their previous status and file.
    """

    report = {"success": 0, "failed": 0, "errors": []}
    targets = [c.id for c in await crud.get_valid_certificates(db, course_id)]
    for certificate_pk in targets:
        certificate = await crud.get_certificate(db, certificate_pk)
        if template:
            certificate.template = template
        if await generate_artifact(db, certificate, renderer):
            report["success"] += 1
        else:
            report["failed"] += 1
            report["errors"].append(
                {
                    "certificate_id": certificate.certificate_id,
                    "error": certificate.last_error,
                }
            )
    logger.info(
        "Certificate regeneration: %s rendered, %s failed",
        report["success"],
        report["failed"],
    )
    return report


async def notify_certificates(
    db: AsyncSession,
    certificate_pks: Iterable[int],
    notifiers: Iterable[Notifier],
    now: datetime | None = None,
) -> dict:
    """Send the certificate notice for a chosen set of certificates."""

    now = now or datetime.utcnow()
    notifiers = list(notifiers)
    report = {"sent": 0, "failed": 0, "errors": []}
    for certificate_pk in certificate_pks:
        certificate = await crud.get_certificate(db, certificate_pk)
        error = None
        if not certificate:
            error = "Certificate not found"
        elif not certificate.is_valid:
            error = "Certificate has been revoked"
        elif certificate.status != CertificateStatus.GENERATED:
            error = "Certificate file is not ready"
        else:
            event = (
                "certificate_issued"
                if certificate.notified_at is None
                else "certificate_reminder"
            )
            errors = await send_notifications(db, certificate, notifiers, event, now)
            error = "; ".join(errors) or None
        if error:
            report["failed"] += 1
            report["errors"].append({"id": certificate_pk, "error": error})
        else:
            report["sent"] += 1
    logger.info(
        "Certificate notifications: %s sent, %s failed", report["sent"], report["failed"]
    )
    return report


async def verify_certificate(
    db: AsyncSession, verification_code: str
) -> VerificationResult:
    """Public lookup of a certificate by its verification code."""

    certificate = await crud.find_certificate(db, verification_code)
    if not certificate:
        return VerificationResult(valid=False, message="Certificate not found")
    certificate.verification_count += 1
    await crud.save_certificate(db, certificate)
    if not certificate.is_valid:
        return VerificationResult(valid=False, message="Certificate has been revoked")
    return VerificationResult(
        valid=True,
        message="Certificate is valid",
        certificate={
            "certificate_id": certificate.certificate_id,
            "verification_code": certificate.verification_code,
            "student_name": certificate.student_name,
            "course_name": certificate.course_name,
            "instructor_name": certificate.instructor_name,
            "completion_date": _iso(certificate.completion_date),
            "issued_at": _iso(certificate.issued_at),
            "final_score": certificate.final_score,
            "skills": certificate.snapshot.get("course", {}).get("skills", []),
        },
    )


async def revoke_certificate(
    db: AsyncSession,
    certificate_pk: int,
    reason: str,
    now: datetime | None = None,
) -> Certificate:
    """Invalidate a certificate.  Revoking twice keeps the first revocation."""

    certificate = await crud.get_certificate(db, certificate_pk)
    if not certificate:
        raise NotFound("Certificate not found")
    if not certificate.is_valid:
        return certificate
    certificate.is_valid = False
    certificate.revoked_at = now or datetime.utcnow()
    certificate.revoked_reason = reason
    certificate = await crud.save_certificate(db, certificate)
    enrollment = await crud.get_enrollment(db, certificate.user_id, certificate.course_id)
    if enrollment:
        enrollment.certificate_issued = False
        await crud.save_enrollment(db, enrollment)
    logger.info("Certificate %s revoked: %s", certificate.certificate_id, reason)
    return certificate


async def record_download(
    db: AsyncSession,
    certificate_pk: int,
    user_id: int,
    renderer: ArtifactRenderer,
    now: datetime | None = None,
) -> Certificate:
    """Count a download, rendering the artifact again if it is missing."""

    certificate = await crud.get_certificate(db, certificate_pk)
    if not certificate or certificate.user_id != user_id:
        raise NotFound("Certificate not found")
    if not certificate.is_valid:
        raise PolicyViolation("Certificate has been revoked", code="certificate_revoked")
    if not certificate.artifact_path or not pathlib.Path(certificate.artifact_path).exists():
        if not await generate_artifact(db, certificate, renderer):
            raise DownstreamFailure("Certificate file is not available")
    certificate.download_count += 1
    certificate.last_downloaded_at = now or datetime.utcnow()
    return await crud.save_certificate(db, certificate)


async def send_certificate_reminders(
    db: AsyncSession,
    notifiers: Iterable[Notifier],
    now: datetime | None = None,
) -> dict:
    """Notify learners about generated certificates they may have missed.

    Certificates whose issuance notice never went out get it now; those
    issued more than ``reminder_days`` ago and downloaded at most once get
    a reminder, at most one per ``reminder_days``.
    """

    now = now or datetime.utcnow()
    settings = await crud.get_settings(db)
    cutoff = now - timedelta(days=settings.reminder_days)
    notifiers = list(notifiers)
    result = await db.execute(
        select(Certificate)
        .where(
            Certificate.status == CertificateStatus.GENERATED.value,
            Certificate.is_valid == True,  # noqa: E712
        )
        .order_by(Certificate.id)
    )
    report = {"sent": 0, "failed": 0, "errors": []}
    for certificate_pk in [c.id for c in result.scalars().all()]:
        certificate = await crud.get_certificate(db, certificate_pk)
        if certificate.notified_at is None:
            event = "certificate_issued"
        elif (
            certificate.issued_at < cutoff
            and certificate.download_count <= 1
            and certificate.notified_at < cutoff
        ):
            event = "certificate_reminder"
        else:
            continue
        errors = await send_notifications(db, certificate, notifiers, event, now)
        if errors:
            report["failed"] += 1
            report["errors"].append(
                {"certificate_id": certificate.certificate_id, "error": "; ".join(errors)}
            )
        else:
            report["sent"] += 1
    logger.info(
        "Certificate reminders: %s sent, %s failed", report["sent"], report["failed"]
    )
    return report


async def get_certificate_stats(db: AsyncSession) -> dict:
    """Totals by validity and generation status."""

    result = await db.execute(
        select(Certificate.status, Certificate.is_valid, func.count(Certificate.id))
        .group_by(Certificate.status, Certificate.is_valid)
    )
    stats = {
        "total": 0,
        "valid": 0,
        "revoked": 0,
        "by_status": {status.value: 0 for status in CertificateStatus},
    }
    for status, is_valid, count in result.all():
        stats["total"] += count
        stats["valid" if is_valid else "revoked"] += count
        stats["by_status"][status] = stats["by_status"].get(status, 0) + count
    totals = await db.execute(
        select(
            func.coalesce(func.sum(Certificate.download_count), 0),
            func.coalesce(func.sum(Certificate.verification_count), 0),
        )
    )
    stats["downloads"], stats["verifications"] = totals.one()
    return stats


async def issue_if_completed(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    renderer: ArtifactRenderer,
    notifiers: Iterable[Notifier] = (),
) -> Optional[AutoIssueResult]:
    """Run automatic issuance once the learner's enrollment is complete."""

    enrollment = await crud.get_enrollment(db, user_id, course_id)
    if (
        not enrollment
        or enrollment.status != EnrollmentStatus.COMPLETED
        or enrollment.certificate_issued
    ):
        return None
    result = await trigger_automatic_certificate(db, user_id, course_id, renderer, notifiers)
    if not result.generated:
        logger.info(
            "No automatic certificate for user %s in course %s: %s",
            user_id,
            course_id,
            result.reason,
        )
    return result
