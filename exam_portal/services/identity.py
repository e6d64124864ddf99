"""Best-effort identity resolution between students, profiles and attempts."""

import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from exam_portal.exceptions import InvalidStudent, StorageError
from exam_portal.models import Profile, Student

logger = logging.getLogger(__name__)


def find_student_by_email(session: Session, email: str) -> list[Student]:
    stmt = select(Student).where(func.lower(Student.email) == email.strip().lower())
    return list(session.exec(stmt).all())


def resolve_student(
    session: Session,
    student_id: Optional[int] = None,
    student_email: Optional[str] = None,
) -> Student:
    """Resolve an id and/or email to exactly one student.

    When both are supplied they must point at the same record.
    """
    email = (student_email or "").strip()
    if student_id is None and not email:
        raise InvalidStudent("A student id or email is required")

    try:
        if student_id is not None:
            student = session.get(Student, student_id)
            if student is None:
                raise InvalidStudent(f"No student with id {student_id}")
            if email and student.email.strip().lower() != email.lower():
                raise InvalidStudent("Student id and email refer to different students")
            return student

        matches = find_student_by_email(session, email)
    except SQLAlchemyError as exc:
        logger.error("Student lookup failed", exc_info=True)
        raise StorageError("Could not look up student") from exc

    if not matches:
        raise InvalidStudent(f"No student registered with email {email}")
    if len(matches) > 1:
        raise InvalidStudent(f"Email {email} matches more than one student")
    return matches[0]


def resolve_profiles(session: Session, user_ids: Iterable[str]) -> dict[str, Profile]:
    """Map user ids to display profiles; lookup failures yield an empty map."""
    ids = sorted({uid for uid in user_ids if uid})
    if not ids:
        return {}
    try:
        profiles = session.exec(select(Profile).where(Profile.id.in_(ids))).all()
    except SQLAlchemyError:
        logger.warning("Could not load profiles for %d AI attempt users", len(ids), exc_info=True)
        return {}
    return {p.id: p for p in profiles}
