"""Assessment authoring and the student-facing schedule listing."""

import logging
from datetime import date, datetime
from typing import Any, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from exam_portal.exceptions import InvalidStudent, NotFound, StorageError, ValidationError
from exam_portal.models import QUESTION_MCQ, Assessment, Question
from exam_portal.services.identity import find_student_by_email
from exam_portal.services.schedule import (
    format_remaining,
    format_time_12h,
    parse_date,
    parse_time,
    resolve_state,
    window_for,
)
from exam_portal.services.scoring import normalize_question_type, parse_admin_correct, validate_mcq
from exam_portal.utils import sanitize_plain_text, sanitize_question_text, validate_marks

logger = logging.getLogger(__name__)


def _save(session: Session, obj, what: str):
    try:
        session.add(obj)
        session.commit()
        session.refresh(obj)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to save %s", what, exc_info=True)
        raise StorageError(f"Could not save {what}") from exc
    return obj


def create_assessment(
    session: Session,
    course: str,
    level: str,
    date: Union[date, str],
    start_time: str,
    end_time: str,
    total_marks: int,
    duration: Optional[str] = None,
) -> Assessment:
    course_clean = (course or "").strip()
    level_clean = (level or "").strip()
    if not course_clean or not level_clean:
        raise ValidationError("Course and level are required")

    day = parse_date(date)
    if day is None:
        raise ValidationError(f"Invalid date: {date!r}")
    start = parse_time(start_time)
    end = parse_time(end_time)
    if start is None or end is None:
        raise ValidationError("Start and end times must look like '10:00 AM' or '13:30'")
    if not start < end:
        raise ValidationError("Start time must be before end time")
    if total_marks is None or total_marks < 0:
        raise ValidationError("Total marks cannot be negative")

    assessment = Assessment(
        course=course_clean,
        level=level_clean,
        date=day,
        start_time=format_time_12h(start),
        end_time=format_time_12h(end),
        duration=(duration or "").strip() or None,
        total_marks=total_marks,
    )
    _save(session, assessment, "assessment")
    logger.info("Created assessment %s for %s (%s)", assessment.id, course_clean, level_clean)
    return assessment


def get_assessment(session: Session, assessment_id: int) -> Assessment:
    try:
        assessment = session.get(Assessment, assessment_id)
    except SQLAlchemyError as exc:
        raise StorageError("Could not load assessment") from exc
    if assessment is None:
        raise NotFound(f"Assessment {assessment_id} not found")
    return assessment


def add_question(
    session: Session,
    assessment_id: int,
    prompt: str,
    question_type: str = QUESTION_MCQ,
    options: Union[List[str], str, None] = None,
    correct: Any = None,
    marks: int = 1,
    explanation: Optional[str] = None,
    ai_generated: bool = False,
) -> Question:
    # Ensure the target assessment exists before adding the question
    get_assessment(session, assessment_id)

    qtype = normalize_question_type(question_type)
    prompt_clean = sanitize_question_text(prompt or "")
    if not prompt_clean:
        raise ValidationError("Question text cannot be empty after sanitization")

    try:
        validate_marks(marks)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    stored_options = None
    if qtype == QUESTION_MCQ:
        if isinstance(options, str):
            options = options.split("|")
        stored_options = [str(o).strip() for o in (options or []) if str(o).strip()]

    stored_correct = parse_admin_correct(correct, qtype)
    if qtype == QUESTION_MCQ:
        validate_mcq(stored_options, stored_correct)

    question = Question(
        assessment_id=assessment_id,
        type=qtype,
        prompt=prompt_clean,
        options=stored_options,
        correct=stored_correct,
        explanation=sanitize_plain_text(explanation) if explanation else None,
        marks=marks,
        ai_generated=bool(ai_generated),
    )
    return _save(session, question, "question")


def list_questions(session: Session, assessment_id: int) -> List[Question]:
    try:
        return list(
            session.exec(
                select(Question).where(Question.assessment_id == assessment_id).order_by(Question.id)
            ).all()
        )
    except SQLAlchemyError as exc:
        logger.error("Failed to load questions for assessment %s", assessment_id, exc_info=True)
        raise StorageError("Could not load questions") from exc


def list_for_student(session: Session, email: str, now: Optional[datetime] = None) -> List[dict]:
    """Assessments matching the student's course and level, with live state."""
    if not (email or "").strip():
        raise InvalidStudent("An email is required")
    matches = find_student_by_email(session, email)
    if len(matches) != 1:
        raise InvalidStudent("Failed to resolve your profile. Contact admin.")
    student = matches[0]

    course = (student.course or "").strip()
    level = (student.level or "").strip()
    if not course and not level:
        raise InvalidStudent("No assigned course/level found. Admin must assign them.")

    stmt = select(Assessment)
    if course:
        stmt = stmt.where(func.lower(Assessment.course) == course.lower())
    if level:
        stmt = stmt.where(func.lower(Assessment.level) == level.lower())

    try:
        assessments = session.exec(stmt).all()
    except SQLAlchemyError as exc:
        logger.error("Failed to load assessments for %s", email, exc_info=True)
        raise StorageError("Failed to load assessments. Try again later.") from exc

    def order(a: Assessment):
        start, _ = window_for(a)
        return (a.date or date.max, start or datetime.max, a.id or 0)

    listing = []
    for assessment in sorted(assessments, key=order):
        schedule = resolve_state(assessment, now)
        listing.append(
            {
                "assessment": assessment,
                "state": schedule.state,
                "remaining_seconds": schedule.remaining_seconds,
                "remaining": format_remaining(schedule.remaining),
            }
        )
    return listing
