"""Contracts for the artifact renderer and the notifiers.

The engine only depends on the two protocols below.  The default
implementations are a renderer that writes a plain
text certificate to ``CERTIFICATE_DIR`` and notifiers that log the mail
or store an in-app notification row.
"""

import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Protocol

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursecert.database import get_session
from coursecert.models import Notification

logger = logging.getLogger(__name__)

CERTIFICATE_DIR = os.getenv("CERTIFICATE_DIR", "./certificates")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")


@dataclass
class RenderedArtifact:
    path: str
    file_size: int


class ArtifactRenderer(Protocol):
    async def generate(self, certificate_data: dict, options: dict) -> RenderedArtifact:
        ...


class Notifier(Protocol):
    async def notify(self, event: str, payload: dict) -> None:
        ...


class FileArtifactRenderer:
    """Write a text rendition of the certificate into a directory."""

    def __init__(self, directory: str | None = None):
        self.directory = pathlib.Path(directory or CERTIFICATE_DIR)

    def path_for(self, certificate_id: str) -> pathlib.Path:
        return self.directory / f"{certificate_id}.txt"

    async def generate(self, certificate_data: dict, options: dict) -> RenderedArtifact:
        path = pathlib.Path(options.get("output_path") or self.path_for(certificate_data["certificate_id"]))
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            "CERTIFICATE OF COMPLETION",
            "",
            f"This certifies that {certificate_data['student_name']}",
            f"has completed {certificate_data['course_name']}",
            f"Instructor: {certificate_data.get('instructor_name') or '-'}",
            f"Completed on: {certificate_data['completion_date']}",
            f"Certificate: {certificate_data['certificate_id']}",
            f"Verify at: {certificate_data['verification_url']}",
        ]
        if certificate_data.get("final_score") is not None:
            lines.insert(4, f"Final score: {round(certificate_data['final_score'])}%")
        body = "\n".join(lines) + "\n"
        path.write_text(body, encoding="utf-8")
        return RenderedArtifact(path=str(path), file_size=path.stat().st_size)


class LoggingEmailNotifier:
    """Stand-in for the mail service: records the outgoing message."""

    async def notify(self, event: str, payload: dict) -> None:
        logger.info(
            "Email %s to user %s for certificate %s",
            event,
            payload.get("user_id"),
            payload.get("certificate_id"),
        )


class InAppNotifier:
    """Store a notification the learner sees in the application."""

    TITLES = {
        "certificate_issued": "Your certificate is ready",
        "certificate_reminder": "Don't forget your certificate",
    }

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(self, event: str, payload: dict) -> None:
        self.db.add(
            Notification(
                user_id=payload["user_id"],
                kind=event,
                title=self.TITLES.get(event, event),
                body=(
                    f"{payload.get('course_name', '')} certificate "
                    f"{payload.get('verification_code', '')}"
                ).strip(),
            )
        )
        await self.db.commit()


def verification_url(verification_code: str) -> str:
    return f"{FRONTEND_URL}/verify/{verification_code}"


def get_renderer() -> ArtifactRenderer:
    """Dependency returning the artifact renderer used by the routes."""
    return FileArtifactRenderer()


async def get_notifiers(db: AsyncSession = Depends(get_session)) -> list[Notifier]:
    return [LoggingEmailNotifier(), InAppNotifier(db)]
