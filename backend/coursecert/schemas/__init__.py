"""Convenience imports for all schema classes used by the API."""

from .user import UserCreate, UserResponse, UserLogin
from .quiz import (
    QuizCreate,
    QuizRead,
    QuizInstructorView,
    AttemptView,
    AnswerSubmit,
    AttemptSubmit,
    AttemptResult,
)
from .progress import ProgressUpdate, ProgressRead
from .certificate import (
    CertificateIssue,
    CertificateRevoke,
    CertificateRead,
    CertificateBulkNotify,
)
from .settings import SettingsRead, SettingsUpdate

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "QuizCreate",
    "QuizRead",
    "QuizInstructorView",
    "AttemptView",
    "AnswerSubmit",
    "AttemptSubmit",
    "AttemptResult",
    "ProgressUpdate",
    "ProgressRead",
    "CertificateIssue",
    "CertificateRevoke",
    "CertificateRead",
    "CertificateBulkNotify",
    "SettingsRead",
    "SettingsUpdate",
]
