"""Marks report: manual and AI summaries side by side."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.exceptions import StorageError
from exam_portal.services.aggregation import build_marks_report
from exam_portal.services.sources import AIAttemptSource, ManualAttemptSource

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/marks")
def view_marks(
    session: Session = Depends(get_session),
    search: Optional[str] = Query(None),
    manual_sort: str = Query("total_score"),
    manual_dir: str = Query("desc", pattern="^(asc|desc)$"),
    ai_sort: str = Query("avg_score_pct"),
    ai_dir: str = Query("desc", pattern="^(asc|desc)$"),
):
    """Per-student summaries; a failing source leaves its table empty."""
    unavailable = []
    sources = {"manual": ManualAttemptSource(session), "ai": AIAttemptSource(session)}
    rows = {}
    for name, source in sources.items():
        try:
            rows[name] = source.list_all()
        except StorageError:
            logger.warning("Marks report without %s attempts", name)
            rows[name] = []
            unavailable.append(name)

    report = build_marks_report(
        rows["manual"],
        rows["ai"],
        search=search,
        manual_sort=(manual_sort, manual_dir),
        ai_sort=(ai_sort, ai_dir),
    )
    report["unavailable"] = unavailable
    return report
