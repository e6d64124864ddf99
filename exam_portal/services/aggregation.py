"""Per-student marks summaries for manual and AI attempts.

The two sources are summarised separately and only placed side by side:
manual scores are marks against assessment totals, AI scores are puzzle
counts, so no blended percentage is ever produced.

Rows are plain dicts as returned by the attempt sources. A malformed row
contributes nothing and never fails the whole aggregation.
"""

import logging
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from exam_portal.exceptions import ValidationError

logger = logging.getLogger(__name__)

MANUAL_SORT_KEYS = {
    "student_id",
    "attempts_count",
    "total_score",
    "possible_total_marks",
    "percent_of_total",
    "avg_score",
}
AI_SORT_KEYS = {
    "attempts_count",
    "total_correct",
    "total_possible",
    "avg_score_pct",
}


def _number(value: Any) -> float:
    """Numeric value of a field; null or junk counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Treating non-numeric value %r as 0", value)
        return 0


def _is_key(value: Any) -> bool:
    """Ids used for grouping must be plain ints or strings."""
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def _assessment_of(row: Mapping) -> tuple[Any, Any]:
    assessment = row.get("assessment")
    if not isinstance(assessment, Mapping):
        assessment = {}
    assessment_id = assessment.get("id")
    if assessment_id is None:
        assessment_id = row.get("assessment_id")
    return assessment_id, assessment.get("total_marks")


def aggregate_manual(rows: Iterable[Any]) -> list[dict]:
    """Group manual attempts by student id (falling back to email)."""
    groups: dict[Any, dict] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            logger.warning("Skipping malformed manual attempt row: %r", row)
            continue

        key = row.get("student_id")
        if key is None:
            key = row.get("student_email") or f"u-{row.get('id')}"
        if not _is_key(key):
            logger.warning("Skipping manual attempt %r with unusable student identity", row.get("id"))
            continue

        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "student_id": row.get("student_id"),
                "student_email": row.get("student_email") or "",
                "attempts": [],
                "attempts_count": 0,
                "total_score": 0,
                "possible_total_marks": 0,
                "_seen": set(),
            }
        elif not group["student_email"] and row.get("student_email"):
            group["student_email"] = row["student_email"]

        assessment_id, total_marks = _assessment_of(row)
        group["attempts"].append(
            {
                "id": row.get("id"),
                "assessment_id": assessment_id,
                "assessment": row.get("assessment"),
                "score": row.get("score"),
                "status": row.get("status"),
                "started_at": row.get("started_at"),
                "completed_at": row.get("completed_at"),
            }
        )
        group["attempts_count"] = len(group["attempts"])
        group["total_score"] += _number(row.get("score"))

        # Each assessment's total counts once per student
        if not _is_key(assessment_id):
            if assessment_id is not None:
                logger.warning("Ignoring unusable assessment id %r", assessment_id)
        elif assessment_id not in group["_seen"]:
            group["_seen"].add(assessment_id)
            group["possible_total_marks"] += _number(total_marks)

    summaries = []
    for group in groups.values():
        group.pop("_seen")
        possible = group["possible_total_marks"]
        count = group["attempts_count"]
        group["percent_of_total"] = (
            round(group["total_score"] / possible * 100, 2) if possible > 0 else None
        )
        group["avg_score"] = round(group["total_score"] / count, 2) if count > 0 else None
        summaries.append(group)
    return summaries


def aggregate_ai(rows: Iterable[Any]) -> list[dict]:
    """Group AI attempts by user id; anonymous attempts stay separate."""
    groups: dict[Any, dict] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            logger.warning("Skipping malformed AI attempt row: %r", row)
            continue

        key = row.get("user_id") or f"anon-{row.get('id')}"
        if not _is_key(key):
            logger.warning("Skipping AI attempt %r with unusable user id", row.get("id"))
            continue
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "student_id": key,
                "student_email": row.get("student_email") or "",
                "student_name": row.get("student_name"),
                "attempts": [],
                "attempts_count": 0,
                "total_correct": 0,
                "total_possible": 0,
            }
        group["attempts"].append(
            {
                "id": row.get("id"),
                "total_puzzles": row.get("total_puzzles"),
                "correct_count": row.get("correct_count"),
                "score_pct": row.get("score_pct"),
                "started_at": row.get("started_at"),
                "finished_at": row.get("finished_at"),
                "created_at": row.get("created_at"),
            }
        )
        group["attempts_count"] = len(group["attempts"])
        group["total_correct"] += _number(row.get("correct_count"))
        group["total_possible"] += _number(row.get("total_puzzles"))

    summaries = []
    for group in groups.values():
        group["avg_score_pct"] = round(
            group["total_correct"] / max(group["total_possible"], 1) * 100, 2
        )
        summaries.append(group)
    return summaries


def filter_summaries(summaries: list[dict], query: Optional[str]) -> list[dict]:
    """Case-insensitive substring match on email or id."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(summaries)
    return [
        s
        for s in summaries
        if needle in (s.get("student_email") or "").lower()
        or needle in str(s.get("student_id") or "").lower()
    ]


def _sort_value(value: Any) -> float:
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def sort_summaries(
    summaries: list[dict],
    key: str,
    direction: str = "desc",
    allowed: Optional[set] = None,
) -> list[dict]:
    """Sort by a numeric column; ties keep grouping order."""
    if allowed is not None and key not in allowed:
        raise ValidationError(f"Cannot sort by {key!r}")
    if direction not in ("asc", "desc"):
        raise ValidationError("Sort direction must be 'asc' or 'desc'")
    return sorted(
        summaries,
        key=lambda s: _sort_value(s.get(key)),
        reverse=(direction == "desc"),
    )


def build_marks_report(
    manual_rows: Iterable[Any],
    ai_rows: Iterable[Any],
    search: Optional[str] = None,
    manual_sort: tuple[str, str] = ("total_score", "desc"),
    ai_sort: tuple[str, str] = ("avg_score_pct", "desc"),
) -> dict:
    """Manual and AI summaries side by side, filtered and sorted independently."""
    manual = filter_summaries(aggregate_manual(manual_rows), search)
    ai = filter_summaries(aggregate_ai(ai_rows), search)
    return {
        "manual": sort_summaries(manual, *manual_sort, allowed=MANUAL_SORT_KEYS),
        "ai": sort_summaries(ai, *ai_sort, allowed=AI_SORT_KEYS),
    }
