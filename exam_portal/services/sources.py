"""Attempt sources read by the marks aggregation.

Manual attempts and AI (puzzle) attempts live in separate tables and are never
joined by key. Each source exposes the same small capability so the
aggregator can consume either without assuming a shared schema.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Protocol, Union

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from exam_portal.config import settings
from exam_portal.exceptions import StorageError, ValidationError
from exam_portal.models import AIAttempt, Assessment, AssessmentAttempt
from exam_portal.services.identity import resolve_profiles
from exam_portal.utils import utcnow

logger = logging.getLogger(__name__)


class AttemptSource(Protocol):
    def list_all(self) -> list[dict]:
        ...

    def list_by_student(self, identity: Union[int, str]) -> list[dict]:
        ...


class ManualAttemptSource:
    """Attempts at scheduled assessments, each carrying its assessment summary."""

    def __init__(self, session: Session):
        self.session = session

    def _rows(self, *criteria) -> list[dict]:
        stmt = (
            select(AssessmentAttempt, Assessment)
            .join(Assessment, Assessment.id == AssessmentAttempt.assessment_id, isouter=True)
            .where(*criteria)
            .order_by(AssessmentAttempt.student_id, AssessmentAttempt.id)
        )
        try:
            pairs = self.session.exec(stmt).all()
        except SQLAlchemyError as exc:
            logger.error("Failed to load manual attempts", exc_info=True)
            raise StorageError("Could not load assessment attempts") from exc
        return [self._to_row(attempt, assessment) for attempt, assessment in pairs]

    @staticmethod
    def _to_row(attempt: AssessmentAttempt, assessment: Optional[Assessment]) -> dict:
        return {
            "id": attempt.id,
            "student_id": attempt.student_id,
            "student_email": attempt.student_email,
            "assessment_id": attempt.assessment_id,
            "score": attempt.score,
            "status": attempt.status,
            "started_at": attempt.started_at,
            "completed_at": attempt.completed_at,
            "assessment": (
                {
                    "id": assessment.id,
                    "course": assessment.course,
                    "date": assessment.date,
                    "total_marks": assessment.total_marks,
                }
                if assessment
                else None
            ),
        }

    def list_all(self) -> list[dict]:
        return self._rows()

    def list_by_student(self, identity: Union[int, str]) -> list[dict]:
        if isinstance(identity, int) or (isinstance(identity, str) and identity.strip().isdigit()):
            return self._rows(AssessmentAttempt.student_id == int(identity))
        if isinstance(identity, str) and identity.strip():
            return self._rows(func.lower(AssessmentAttempt.student_email) == identity.strip().lower())
        raise ValidationError("Student identity must be an id or an email")


class AIAttemptSource:
    """AI-graded puzzle attempts, labelled with profile details where known."""

    def __init__(self, session: Session, limit: Optional[int] = None):
        self.session = session
        self.limit = limit or settings.AI_ATTEMPT_FETCH_LIMIT

    def _rows(self, *criteria) -> list[dict]:
        stmt = (
            select(AIAttempt)
            .where(*criteria)
            .order_by(AIAttempt.created_at.desc(), AIAttempt.id.desc())
            .limit(self.limit)
        )
        try:
            attempts = self.session.exec(stmt).all()
        except SQLAlchemyError as exc:
            logger.error("Failed to load AI attempts", exc_info=True)
            raise StorageError("Could not load AI attempts") from exc

        profiles = resolve_profiles(self.session, (a.user_id for a in attempts))
        rows = []
        for attempt in attempts:
            profile = profiles.get(attempt.user_id) if attempt.user_id else None
            email = (profile.email if profile else None) or attempt.student_email
            name = (
                (profile.full_name or profile.email) if profile else None
            ) or attempt.student_name or email
            rows.append(
                {
                    "id": attempt.id,
                    "user_id": attempt.user_id,
                    "student_email": email,
                    "student_name": name,
                    "total_puzzles": attempt.total_puzzles,
                    "correct_count": attempt.correct_count,
                    "score_pct": attempt.score_pct,
                    "started_at": attempt.started_at,
                    "finished_at": attempt.finished_at,
                    "created_at": attempt.created_at,
                    "details": attempt.details,
                }
            )
        return rows

    def list_all(self) -> list[dict]:
        return self._rows()

    def list_by_student(self, identity: Union[int, str]) -> list[dict]:
        key = str(identity).strip()
        if not key:
            raise ValidationError("Student identity must be a user id or an email")
        return self._rows(
            or_(AIAttempt.user_id == key, func.lower(AIAttempt.student_email) == key.lower())
        )


def record_ai_attempt(
    session: Session,
    user_id: Optional[str],
    total_puzzles: int,
    correct_count: int,
    student_email: Optional[str] = None,
    student_name: Optional[str] = None,
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
    details: Any = None,
) -> AIAttempt:
    """Insert a finished AI attempt; rows are immutable once written."""
    if total_puzzles < 0 or correct_count < 0 or correct_count > total_puzzles:
        raise ValidationError("correct_count must be between 0 and total_puzzles")

    score_pct = round(correct_count / total_puzzles * 100, 2) if total_puzzles else 0
    finished = finished_at or utcnow()
    attempt = AIAttempt(
        user_id=user_id,
        student_email=student_email,
        student_name=student_name,
        total_puzzles=total_puzzles,
        correct_count=correct_count,
        score_pct=score_pct,
        started_at=started_at or finished,
        finished_at=finished,
        details=details,
    )
    try:
        session.add(attempt)
        session.commit()
        session.refresh(attempt)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to record AI attempt", exc_info=True)
        raise StorageError("Could not save AI attempt") from exc
    return attempt
