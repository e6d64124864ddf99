"""Attempt lifecycle: start, complete (score once) and abandon.

State machine::

    started -> completed   (scored exactly once on this edge)
    started -> abandoned   (administrative)

Uniqueness of the open attempt is enforced by the ``uq_attempt_open`` partial
index; completion and abandonment are conditional updates on
``status = 'started'`` so concurrent retries cannot apply twice.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from exam_portal.exceptions import AlreadyCompleted, NotFound, StorageError, WindowClosed
from exam_portal.models import (
    STATUS_ABANDONED,
    STATUS_COMPLETED,
    STATUS_STARTED,
    Assessment,
    AssessmentAttempt,
    AttemptAnswer,
    Question,
)
from exam_portal.services.identity import resolve_student
from exam_portal.services.schedule import resolve_state
from exam_portal.services.scoring import ScoreSheet, score_assessment
from exam_portal.utils import utcnow

logger = logging.getLogger(__name__)


def _find_open_attempt(session: Session, assessment_id: int, student_id: int) -> Optional[AssessmentAttempt]:
    stmt = select(AssessmentAttempt).where(
        (AssessmentAttempt.assessment_id == assessment_id)
        & (AssessmentAttempt.student_id == student_id)
        & (AssessmentAttempt.status == STATUS_STARTED)
    )
    return session.exec(stmt).first()


def get_attempt(session: Session, attempt_id: int) -> AssessmentAttempt:
    try:
        attempt = session.get(AssessmentAttempt, attempt_id)
    except SQLAlchemyError as exc:
        logger.error("Failed to load attempt %s", attempt_id, exc_info=True)
        raise StorageError("Could not load attempt") from exc
    if attempt is None:
        raise NotFound(f"Attempt {attempt_id} not found")
    return attempt


def list_answers(session: Session, attempt_id: int) -> list[AttemptAnswer]:
    try:
        return list(
            session.exec(
                select(AttemptAnswer)
                .where(AttemptAnswer.attempt_id == attempt_id)
                .order_by(AttemptAnswer.question_id)
            ).all()
        )
    except SQLAlchemyError as exc:
        logger.error("Failed to load answers for attempt %s", attempt_id, exc_info=True)
        raise StorageError("Could not load attempt answers") from exc


def start_attempt(
    session: Session,
    assessment_id: int,
    student_id: Optional[int] = None,
    student_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[AssessmentAttempt, bool]:
    """Start (or resume) the student's attempt at an assessment.

    Returns the attempt and whether a new row was created. Repeated calls
    inside the window return the same attempt.
    """
    try:
        assessment = session.get(Assessment, assessment_id)
    except SQLAlchemyError as exc:
        logger.error("Failed to load assessment %s", assessment_id, exc_info=True)
        raise StorageError("Could not load assessment") from exc
    if assessment is None:
        raise NotFound(f"Assessment {assessment_id} not found")

    student = resolve_student(session, student_id, student_email)

    # Authoritative window check; whatever the client displayed is only a hint
    schedule = resolve_state(assessment, now)
    if not schedule.is_open:
        raise WindowClosed(f"Assessment {assessment_id} is not currently open ({schedule.state})")

    try:
        existing = _find_open_attempt(session, assessment.id, student.id)
        if existing:
            logger.info("Resuming attempt %s for student %s", existing.id, student.id)
            return existing, False

        attempt = AssessmentAttempt(
            assessment_id=assessment.id,
            student_id=student.id,
            student_email=student.email,
            status=STATUS_STARTED,
            started_at=utcnow(),
            score=None,
        )
        session.add(attempt)
        session.commit()
        session.refresh(attempt)
    except IntegrityError as exc:
        # Lost a race with a concurrent start; hand back the winner's row
        session.rollback()
        existing = _find_open_attempt(session, assessment.id, student.id)
        if existing:
            logger.info("Concurrent start resolved to attempt %s", existing.id)
            return existing, False
        logger.error("Attempt insert rejected by the store", exc_info=True)
        raise StorageError("Could not create attempt") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Attempt insert failed", exc_info=True)
        raise StorageError("Could not create attempt") from exc

    logger.info(
        "Started attempt %s for student %s on assessment %s",
        attempt.id,
        student.id,
        assessment.id,
    )
    return attempt, True


def complete_attempt(session: Session, attempt_id: int, answers: Any) -> tuple[AssessmentAttempt, ScoreSheet]:
    """Score the submitted answers and close the attempt in one commit.

    A second completion is rejected with ``AlreadyCompleted``; the stored
    score is never recomputed.
    """
    attempt = get_attempt(session, attempt_id)
    if attempt.status == STATUS_COMPLETED:
        raise AlreadyCompleted("You already submitted this attempt")
    if attempt.status != STATUS_STARTED:
        raise AlreadyCompleted("Attempt is no longer open")

    try:
        assessment = session.get(Assessment, attempt.assessment_id)
        questions = list(
            session.exec(select(Question).where(Question.assessment_id == attempt.assessment_id)).all()
        )
    except SQLAlchemyError as exc:
        logger.error("Failed to load questions for attempt %s", attempt_id, exc_info=True)
        raise StorageError("Could not load assessment questions") from exc
    if assessment is None:
        raise NotFound(f"Assessment {attempt.assessment_id} not found")

    sheet = score_assessment(assessment, questions, answers)

    try:
        stmt = (
            update(AssessmentAttempt)
            .where(
                (AssessmentAttempt.id == attempt_id)
                & (AssessmentAttempt.status == STATUS_STARTED)
            )
            .values(status=STATUS_COMPLETED, completed_at=utcnow(), score=sheet.total)
        )
        result = session.exec(stmt)
        if result.rowcount == 0:
            session.rollback()
            raise AlreadyCompleted("You already submitted this attempt")

        for item in sheet.results:
            session.add(
                AttemptAnswer(
                    attempt_id=attempt_id,
                    question_id=item.question_id,
                    response=sheet.answers.get(item.question_id),
                    is_correct=item.correct,
                    marks_awarded=item.marks_awarded,
                    needs_review=item.needs_review,
                )
            )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to store result for attempt %s", attempt_id, exc_info=True)
        raise StorageError("Could not save attempt result") from exc

    session.refresh(attempt)
    logger.info("Completed attempt %s with score %s/%s", attempt.id, sheet.total, sheet.total_marks)
    return attempt, sheet


def abandon_attempt(session: Session, attempt_id: int) -> AssessmentAttempt:
    """Administratively close an open attempt without scoring it."""
    attempt = get_attempt(session, attempt_id)
    try:
        stmt = (
            update(AssessmentAttempt)
            .where(
                (AssessmentAttempt.id == attempt_id)
                & (AssessmentAttempt.status == STATUS_STARTED)
            )
            .values(status=STATUS_ABANDONED)
        )
        result = session.exec(stmt)
        if result.rowcount == 0:
            session.rollback()
            raise AlreadyCompleted(f"Attempt {attempt_id} is already {attempt.status}")
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to abandon attempt %s", attempt_id, exc_info=True)
        raise StorageError("Could not abandon attempt") from exc

    session.refresh(attempt)
    logger.info("Abandoned attempt %s", attempt.id)
    return attempt
