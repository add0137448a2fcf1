"""Database models used by the course completion and certification engine.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent learners, courses, lessons, quizzes, attempts, progress and
the certificates issued from them.  Uniqueness constraints live here too:
the engine relies on them rather than on read-then-write checks.
"""

from enum import Enum
from typing import Any, Optional, List
from datetime import datetime
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Index, UniqueConstraint, text


class LessonType(str, Enum):
    TEXT = "TEXT"
    VIDEO = "VIDEO"
    QUIZ = "QUIZ"


class ProgressStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    ESSAY = "ESSAY"
    MATCHING = "MATCHING"
    ORDERING = "ORDERING"


class AttemptStatus(str, Enum):
    OPEN = "OPEN"
    SUBMITTED = "SUBMITTED"
    EXPIRED = "EXPIRED"


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"
    SUSPENDED = "SUSPENDED"


class CertificateStatus(str, Enum):
    PENDING = "PENDING"
    GENERATED = "GENERATED"
    FAILED = "FAILED"


class BadgeType(str, Enum):
    FIRST_QUIZ_PASSED = "FIRST_QUIZ_PASSED"
    PERFECT_SCORE = "PERFECT_SCORE"
    QUIZ_MASTER = "QUIZ_MASTER"
    COURSE_COMPLETER = "COURSE_COMPLETER"


class User(SQLModel, table=True):
    """Account of a learner, instructor or admin."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = "learner"  # 'learner', 'instructor', 'admin'
    status: str = "active"  # 'active' or 'disabled'


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    category: Optional[str] = None
    level: Optional[str] = None
    instructor_name: Optional[str] = None
    estimated_completion_time: int = 0  # minutes
    minimum_average_score: Optional[int] = None
    skills: List[str] = Field(sa_column=Column(JSON), default_factory=list)
    is_published: bool = True


class Lesson(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str
    type: str = LessonType.TEXT.value
    content: str = ""
    video_duration: Optional[float] = None  # minutes
    order: int = 1
    is_published: bool = True


class Progress(SQLModel, table=True):
    """Per learner and lesson progress record, one row per pair."""

    __table_args__ = (UniqueConstraint("user_id", "lesson_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    lesson_id: int = Field(foreign_key="lesson.id")
    course_id: int = Field(foreign_key="course.id", index=True)
    time_spent: int = 0  # seconds
    completion_percentage: float = 0.0
    last_position: float = 0.0
    status: str = ProgressStatus.NOT_STARTED.value
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Quiz(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    lesson_id: Optional[int] = Field(default=None, foreign_key="lesson.id")
    title: str
    passing_score: int = 70
    time_limit: Optional[int] = None  # minutes
    max_attempts: Optional[int] = None
    randomize_questions: bool = False
    randomize_options: bool = False
    questions_per_attempt: Optional[int] = None
    is_required: bool = False
    show_correct_answers: bool = True
    is_published: bool = True


class QuizQuestion(SQLModel, table=True):
    """Stored question row; validated into a typed variant before grading."""

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    type: str
    prompt: str
    options: List[str] = Field(sa_column=Column(JSON), default_factory=list)
    correct_answer: Any = Field(default=None, sa_column=Column(JSON))
    explanation: Optional[str] = None
    points: int = 1
    weight: float = 1.0
    keywords: List[str] = Field(sa_column=Column(JSON), default_factory=list)
    case_sensitive: bool = False
    allow_partial_credit: bool = False
    order: int = 1


class QuizAttempt(SQLModel, table=True):
    """One attempt of a learner at a quiz.

    Only a single OPEN attempt may exist per learner and quiz; the partial
    unique index enforces it at the storage level.
    """

    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", "attempt_number"),
        Index(
            "uq_quizattempt_open",
            "user_id",
            "quiz_id",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    course_id: int = Field(foreign_key="course.id")
    lesson_id: Optional[int] = Field(default=None, foreign_key="lesson.id")
    attempt_number: int
    status: str = AttemptStatus.OPEN.value
    seed: int = 0
    question_order: List[int] = Field(sa_column=Column(JSON), default_factory=list)
    option_order: dict = Field(sa_column=Column(JSON), default_factory=dict)
    answers: List[dict] = Field(sa_column=Column(JSON), default_factory=list)
    score: int = 0
    raw_score: int = 0
    total_points: float = 0
    earned_points: float = 0
    total_weighted_points: float = 0
    earned_weighted_points: float = 0
    passed: bool = False
    time_spent: int = 0  # seconds
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    is_completed: bool = False


class Enrollment(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    status: str = EnrollmentStatus.ACTIVE.value
    progress: int = 0
    completed_lessons: List[int] = Field(sa_column=Column(JSON), default_factory=list)
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    certificate_issued: bool = False


class Certificate(SQLModel, table=True):
    """Course completion certificate.

    ``snapshot`` is written once at issuance and never updated afterwards.
    At most one valid certificate may exist per learner and course.
    """

    __table_args__ = (
        Index(
            "uq_certificate_valid",
            "user_id",
            "course_id",
            unique=True,
            sqlite_where=text("is_valid = 1"),
            postgresql_where=text("is_valid"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    verification_code: str = Field(unique=True, index=True)
    certificate_id: str = Field(unique=True, index=True)
    status: str = CertificateStatus.PENDING.value
    template: str = "standard"
    is_valid: bool = True
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
    issued_at: datetime = Field(default_factory=datetime.utcnow)
    completion_date: datetime = Field(default_factory=datetime.utcnow)
    final_score: Optional[float] = None
    time_spent: float = 0  # minutes
    student_name: str = ""
    course_name: str = ""
    instructor_name: Optional[str] = None
    snapshot: dict = Field(sa_column=Column(JSON), default_factory=dict)
    artifact_path: Optional[str] = None
    artifact_size: Optional[int] = None
    generation_attempts: int = 0
    last_error: Optional[str] = None
    notified_at: Optional[datetime] = None
    download_count: int = 0
    last_downloaded_at: Optional[datetime] = None
    verification_count: int = 0


class Achievement(SQLModel, table=True):
    """Badge earned by a learner; awarding twice is a no-op."""

    __table_args__ = (UniqueConstraint("user_id", "badge_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    badge_type: str
    title: str
    description: str = ""
    course_id: Optional[int] = Field(default=None, foreign_key="course.id")
    quiz_id: Optional[int] = Field(default=None, foreign_key="quiz.id")
    details: dict = Field(sa_column=Column(JSON), default_factory=dict)
    earned_at: datetime = Field(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    """In-app notification shown to a learner."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    kind: str
    title: str
    body: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    read: bool = False


class Settings(SQLModel, table=True):
    """Singleton table storing tunable completion and certification policy."""
    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Course Academy"
    min_text_time_seconds: int = 30
    min_video_watch_percentage: int = 90
    quiz_grace_period_seconds: int = 30
    min_time_fraction: float = 0.5
    certificate_retry_limit: int = 3
    quiz_master_threshold: int = 10
    reminder_days: int = 7
    verification_prefix: str = "LRN"
