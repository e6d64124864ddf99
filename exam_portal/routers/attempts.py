"""Attempt endpoints: start an attempt and submit it for scoring."""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.models import AssessmentAttempt
from exam_portal.services.attempts import complete_attempt, get_attempt, list_answers, start_attempt

router = APIRouter()


class StartAttemptIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assessment_id: int = Field(alias="assessmentId")
    student_id: Optional[int] = Field(default=None, alias="studentId")
    student_email: Optional[str] = Field(default=None, alias="studentEmail")


class CompleteAttemptIn(BaseModel):
    # {"<question id>": answer} or [{"question_id": .., "answer": ..}]
    answers: Union[Dict[str, Any], List[Dict[str, Any]]] = Field(default_factory=dict)


def serialize_attempt(attempt: AssessmentAttempt) -> dict:
    return {
        "id": attempt.id,
        "assessment_id": attempt.assessment_id,
        "student_id": attempt.student_id,
        "student_email": attempt.student_email,
        "status": attempt.status,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "score": attempt.score,
    }


@router.post("/start")
def api_start_attempt(payload: StartAttemptIn = Body(...), session: Session = Depends(get_session)):
    attempt, created = start_attempt(
        session,
        payload.assessment_id,
        student_id=payload.student_id,
        student_email=payload.student_email,
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=jsonable_encoder({"attempt": serialize_attempt(attempt)}),
    )


@router.put("/{attempt_id}/complete")
def api_complete_attempt(
    attempt_id: int,
    payload: CompleteAttemptIn = Body(...),
    session: Session = Depends(get_session),
):
    attempt, sheet = complete_attempt(session, attempt_id, payload.answers)

    results = []
    for item in sheet.results:
        row = item.to_dict()
        # Only reveal the solution for questions the student missed
        if item.correct or item.needs_review:
            row.pop("expected_solution")
        results.append(row)

    return {
        "attempt": serialize_attempt(attempt),
        "correct": sheet.all_correct,
        "correct_count": sheet.correct_count,
        "score": sheet.total,
        "total_marks": sheet.total_marks,
        "percentage": sheet.percentage,
        "clamped": sheet.clamped,
        "results": results,
    }


@router.get("/{attempt_id}")
def api_get_attempt(attempt_id: int, session: Session = Depends(get_session)):
    attempt = get_attempt(session, attempt_id)
    answers = list_answers(session, attempt_id)
    return {
        "attempt": serialize_attempt(attempt),
        "answers": [
            {
                "question_id": a.question_id,
                "response": a.response,
                "is_correct": a.is_correct,
                "marks_awarded": a.marks_awarded,
                "needs_review": a.needs_review,
            }
            for a in answers
        ],
    }
