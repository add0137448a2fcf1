"""Aggregate import for all API route modules."""

from . import auth, quizzes, progress, certificates, admin

__all__ = [
    "auth",
    "quizzes",
    "progress",
    "certificates",
    "admin",
]
