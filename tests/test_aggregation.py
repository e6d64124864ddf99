"""Per-student summaries for manual and AI attempts."""

import pytest

from exam_portal.exceptions import ValidationError
from exam_portal.services.aggregation import (
    aggregate_ai,
    aggregate_manual,
    build_marks_report,
    filter_summaries,
    sort_summaries,
)


def _manual(attempt_id, student_id, score, assessment_id, total_marks, email=None):
    return {
        "id": attempt_id,
        "student_id": student_id,
        "student_email": email,
        "assessment_id": assessment_id,
        "score": score,
        "status": "completed",
        "assessment": {"id": assessment_id, "total_marks": total_marks},
    }


def _ai(attempt_id, user_id, correct, total, email=None):
    return {
        "id": attempt_id,
        "user_id": user_id,
        "student_email": email,
        "correct_count": correct,
        "total_puzzles": total,
    }


class TestAggregateManual:
    def test_empty_input(self):
        assert aggregate_manual([]) == []

    def test_single_attempt_percentage(self):
        [summary] = aggregate_manual([_manual(1, 7, 8, 100, 10)])

        assert summary["attempts_count"] == 1
        assert summary["total_score"] == 8
        assert summary["possible_total_marks"] == 10
        assert summary["percent_of_total"] == 80.0
        assert summary["avg_score"] == 8.0

    def test_same_assessment_counts_once(self):
        rows = [_manual(1, 7, 4, 100, 10), _manual(2, 7, 6, 100, 10)]

        [summary] = aggregate_manual(rows)

        assert summary["attempts_count"] == 2
        assert summary["total_score"] == 10
        assert summary["possible_total_marks"] == 10
        assert summary["avg_score"] == 5.0

    def test_zero_possible_marks_gives_null_percentage(self):
        [summary] = aggregate_manual([_manual(1, 7, 0, 100, 0)])

        assert summary["percent_of_total"] is None

    def test_null_scores_count_as_zero(self):
        rows = [_manual(1, 7, None, 100, 10), _manual(2, 7, 5, 101, 10)]

        [summary] = aggregate_manual(rows)

        assert summary["total_score"] == 5
        assert summary["possible_total_marks"] == 20
        assert summary["percent_of_total"] == 25.0

    def test_groups_by_id_then_email(self):
        rows = [
            _manual(1, 7, 5, 100, 10),
            _manual(2, None, 3, 100, 10, email="guest@example.com"),
            _manual(3, None, 2, 101, 10, email="guest@example.com"),
            _manual(4, None, 1, 100, 10),
        ]

        summaries = aggregate_manual(rows)

        assert [s["student_id"] for s in summaries] == [7, None, None]
        assert summaries[1]["student_email"] == "guest@example.com"
        assert summaries[1]["attempts_count"] == 2
        assert summaries[2]["attempts_count"] == 1

    def test_malformed_rows_are_skipped(self):
        rows = [
            None,
            "garbage",
            _manual(1, 7, "not-a-number", 100, 10),
            {"id": 2, "student_id": 7, "score": 3, "assessment": "oops"},
            _manual(3, 7, 2, 101, None),
        ]

        [summary] = aggregate_manual(rows)

        assert summary["attempts_count"] == 3
        assert summary["total_score"] == 5
        assert summary["possible_total_marks"] == 10

    def test_unhashable_identities_do_not_stop_aggregation(self, caplog):
        rows = [
            _manual(1, 7, 4, 100, 10),
            _manual(2, [7], 9, 100, 10),
            _manual(3, None, 9, 100, 10, email={"email": "x"}),
            {"id": 4, "student_id": 7, "score": 2, "assessment": {"id": {"nested": 1}, "total_marks": 10}},
        ]

        [summary] = aggregate_manual(rows)

        assert summary["student_id"] == 7
        assert summary["attempts_count"] == 2
        assert summary["total_score"] == 6
        assert summary["possible_total_marks"] == 10
        assert "unusable" in caplog.text


class TestAggregateAI:
    def test_percentage_from_puzzle_counts(self):
        [summary] = aggregate_ai([_ai(1, "user-a", 3, 5)])

        assert summary["total_correct"] == 3
        assert summary["total_possible"] == 5
        assert summary["avg_score_pct"] == 60.0

    def test_sums_across_attempts(self):
        [summary] = aggregate_ai([_ai(1, "user-a", 3, 5), _ai(2, "user-a", 5, 5)])

        assert summary["attempts_count"] == 2
        assert summary["avg_score_pct"] == 80.0

    def test_missing_counts_never_divide_by_zero(self):
        [summary] = aggregate_ai([_ai(1, "user-a", None, None)])

        assert summary["avg_score_pct"] == 0.0

    def test_anonymous_attempts_stay_separate(self):
        summaries = aggregate_ai([_ai(1, None, 1, 2), _ai(2, None, 2, 2)])

        assert [s["student_id"] for s in summaries] == ["anon-1", "anon-2"]

    def test_unhashable_user_id_is_skipped(self):
        summaries = aggregate_ai([_ai(1, ["user-a"], 1, 2), _ai(2, "user-a", 2, 2)])

        assert [s["student_id"] for s in summaries] == ["user-a"]
        assert summaries[0]["attempts_count"] == 1


def test_sources_are_reported_side_by_side_not_blended():
    """8/10 on a manual assessment and 3/5 puzzles stay 80% and 60%."""
    report = build_marks_report(
        [_manual(1, 7, 8, 100, 10, email="alice@example.com")],
        [_ai(1, "user-alice", 3, 5, email="alice@example.com")],
    )

    assert report["manual"][0]["percent_of_total"] == 80.0
    assert report["ai"][0]["avg_score_pct"] == 60.0
    assert set(report) == {"manual", "ai"}


class TestFilterAndSort:
    def _summaries(self):
        return aggregate_manual(
            [
                _manual(1, 1, 5, 100, 10, email="Carol@Example.com"),
                _manual(2, 2, 9, 100, 10, email="dave@example.com"),
                _manual(3, 3, 5, 100, 10, email="erin@example.com"),
                _manual(4, 4, None, None, None, email="frank@example.com"),
            ]
        )

    def test_filter_is_case_insensitive_substring(self):
        assert [s["student_id"] for s in filter_summaries(self._summaries(), "carol")] == [1]
        assert [s["student_id"] for s in filter_summaries(self._summaries(), "EXAMPLE")] == [1, 2, 3, 4]
        assert [s["student_id"] for s in filter_summaries(self._summaries(), "3")] == [3]
        assert len(filter_summaries(self._summaries(), "  ")) == 4

    def test_sort_descending_keeps_ties_in_group_order(self):
        ordered = sort_summaries(self._summaries(), "total_score", "desc")

        assert [s["student_id"] for s in ordered] == [2, 1, 3, 4]

    def test_sort_ascending_treats_null_as_zero(self):
        ordered = sort_summaries(self._summaries(), "percent_of_total", "asc")

        assert [s["student_id"] for s in ordered] == [4, 1, 3, 2]

    def test_unknown_sort_key_is_rejected(self):
        with pytest.raises(ValidationError):
            build_marks_report([], [], manual_sort=("student_email", "asc"))

    def test_bad_direction_is_rejected(self):
        with pytest.raises(ValidationError):
            sort_summaries(self._summaries(), "total_score", "sideways")
