"""SQLModel tables for assessments, attempts and AI attempts."""

from __future__ import annotations

from datetime import date as dt_date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from exam_portal.utils import utcnow

# Attempt lifecycle
STATUS_STARTED = "started"
STATUS_COMPLETED = "completed"
STATUS_ABANDONED = "abandoned"

# Question kinds as written by the admin form
QUESTION_MCQ = "mcq"
QUESTION_SHORT = "short"
QUESTION_ESSAY = "essay"


def _timestamp(nullable: bool = True) -> Column:
    # Naive UTC, as produced by utils.utcnow()
    return Column(DateTime(timezone=False), nullable=nullable)


class Student(SQLModel, table=True):
    """Student list entry used to resolve identities when starting attempts."""

    __table_args__ = (UniqueConstraint("email", name="uq_student_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    # Comma-separated when a student follows several courses
    course: Optional[str] = None
    level: Optional[str] = None
    # Auth user id, when the student has signed up
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))


class Profile(SQLModel, table=True):
    """Display profile for an authenticated user (labels AI attempts)."""

    id: str = Field(primary_key=True)
    full_name: Optional[str] = None
    email: Optional[str] = None


class Assessment(SQLModel, table=True):
    """A scheduled test bound to a course and level."""

    id: Optional[int] = Field(default=None, primary_key=True)
    course: str
    level: str
    date: Optional[dt_date] = None
    # Local wall-clock, "10:00 AM" or "13:30"
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    total_marks: int = 0
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: int = Field(foreign_key="assessment.id", index=True)
    type: str = Field(default=QUESTION_MCQ)  # mcq | short | essay
    prompt: str
    options: Optional[list] = Field(default=None, sa_column=Column(JSON))
    # int index, list of indices, or literal text
    correct: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    explanation: Optional[str] = None
    marks: int = Field(default=1)
    ai_generated: bool = Field(default=False)


class AssessmentAttempt(SQLModel, table=True):
    """One student's attempt at one assessment."""

    __table_args__ = (
        # At most one open attempt per (assessment, student)
        Index(
            "uq_attempt_open",
            "assessment_id",
            "student_id",
            unique=True,
            sqlite_where=text("status = 'started'"),
            postgresql_where=text("status = 'started'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assessment_id: int = Field(foreign_key="assessment.id", index=True)
    student_id: int = Field(foreign_key="student.id", index=True)
    student_email: Optional[str] = None
    status: str = Field(default=STATUS_STARTED)  # started | completed | abandoned
    started_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))
    completed_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    score: Optional[float] = None


class AttemptAnswer(SQLModel, table=True):
    """Submitted answer and its auto-grading outcome."""

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="assessmentattempt.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    response: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    is_correct: bool = Field(default=False)
    marks_awarded: float = Field(default=0)
    needs_review: bool = Field(default=False)


class AIAttempt(SQLModel, table=True):
    """Puzzle-based attempt graded by the AI assessment flow."""

    id: Optional[int] = Field(default=None, primary_key=True)
    # Null for anonymous sessions
    user_id: Optional[str] = Field(default=None, index=True)
    student_email: Optional[str] = None
    student_name: Optional[str] = None
    total_puzzles: Optional[int] = None
    correct_count: Optional[int] = None
    score_pct: Optional[float] = None
    started_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    finished_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))
    details: Optional[Any] = Field(default=None, sa_column=Column(JSON))
