"""Assessment authoring and schedule endpoints."""

from datetime import datetime
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.models import Assessment, Question
from exam_portal.services.assessments import (
    add_question,
    create_assessment,
    get_assessment,
    list_for_student,
    list_questions,
)
from exam_portal.services.schedule import format_remaining, resolve_state

router = APIRouter()


class CreateAssessmentIn(BaseModel):
    course: str
    level: str
    date: str
    start_time: str
    end_time: str
    total_marks: int
    duration: Optional[str] = None


class CreateQuestionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "mcq"
    prompt: str = Field(alias="question")
    # List, or "A|B|C|D" as typed into the admin form
    options: Union[List[str], str, None] = None
    correct: Any = None
    marks: int = 1
    explanation: Optional[str] = None
    ai_generated: bool = False


def serialize_assessment(assessment: Assessment) -> dict:
    return {
        "id": assessment.id,
        "course": assessment.course,
        "level": assessment.level,
        "date": assessment.date,
        "start_time": assessment.start_time,
        "end_time": assessment.end_time,
        "duration": assessment.duration,
        "total_marks": assessment.total_marks,
    }


def serialize_question(question: Question, include_answer: bool = False) -> dict:
    data = {
        "id": question.id,
        "assessment_id": question.assessment_id,
        "type": question.type,
        "prompt": question.prompt,
        "options": question.options,
        "marks": question.marks,
        "ai_generated": question.ai_generated,
    }
    if include_answer:
        data["correct"] = question.correct
        data["explanation"] = question.explanation
    return data


@router.post("/assessments", status_code=status.HTTP_201_CREATED)
def api_create_assessment(payload: CreateAssessmentIn = Body(...), session: Session = Depends(get_session)):
    assessment = create_assessment(
        session,
        course=payload.course,
        level=payload.level,
        date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        total_marks=payload.total_marks,
        duration=payload.duration,
    )
    return {"assessment": serialize_assessment(assessment)}


@router.get("/assessments/{assessment_id}")
def api_get_assessment(
    assessment_id: int,
    now: Optional[datetime] = Query(None),
    session: Session = Depends(get_session),
):
    """Assessment with its schedule state; ``now`` only affects this display."""
    assessment = get_assessment(session, assessment_id)
    schedule = resolve_state(assessment, now)
    return {
        "assessment": serialize_assessment(assessment),
        "state": schedule.state,
        "remaining_seconds": schedule.remaining_seconds,
        "remaining": format_remaining(schedule.remaining),
    }


@router.post("/assessments/{assessment_id}/questions", status_code=status.HTTP_201_CREATED)
def api_add_question(
    assessment_id: int,
    payload: CreateQuestionIn = Body(...),
    session: Session = Depends(get_session),
):
    question = add_question(
        session,
        assessment_id,
        prompt=payload.prompt,
        question_type=payload.type,
        options=payload.options,
        correct=payload.correct,
        marks=payload.marks,
        explanation=payload.explanation,
        ai_generated=payload.ai_generated,
    )
    return {"question": serialize_question(question, include_answer=True)}


@router.get("/assessments/{assessment_id}/questions")
def api_list_questions(assessment_id: int, session: Session = Depends(get_session)):
    get_assessment(session, assessment_id)
    return [serialize_question(q) for q in list_questions(session, assessment_id)]


@router.get("/students/assessments")
def api_student_assessments(email: str = Query(...), session: Session = Depends(get_session)):
    listing = list_for_student(session, email)
    return [
        {
            "assessment": serialize_assessment(item["assessment"]),
            "state": item["state"],
            "remaining_seconds": item["remaining_seconds"],
            "remaining": item["remaining"],
        }
        for item in listing
    ]
