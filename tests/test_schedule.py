"""Schedule window resolution: upcoming / ongoing / expired / unknown."""

from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace

import pytest

from exam_portal.services.schedule import (
    EXPIRED,
    ONGOING,
    UNKNOWN,
    UPCOMING,
    format_remaining,
    parse_time,
    resolve_state,
)


def _assessment(day="2024-06-01", start="10:00 AM", end="11:00 AM"):
    return SimpleNamespace(date=day, start_time=start, end_time=end)


class TestParseTime:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("10:00 AM", time(10, 0)),
            ("10:00am", time(10, 0)),
            ("12:15 AM", time(0, 15)),
            ("12:15 PM", time(12, 15)),
            ("01:30 PM", time(13, 30)),
            ("13:30", time(13, 30)),
            ("9:05", time(9, 5)),
            ("23:59:30", time(23, 59, 30)),
        ],
    )
    def test_accepts_12_and_24_hour_forms(self, raw, expected):
        assert parse_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "noon", "25:00", "13:00 PM", "10:60", "0:30 AM"])
    def test_rejects_garbage(self, raw):
        assert parse_time(raw) is None


class TestResolveState:
    def test_ongoing_halfway_through_window(self):
        """2024-06-01 10:00-11:00 AM evaluated at 10:30 is ongoing with 30 minutes left."""
        result = resolve_state(_assessment(), datetime(2024, 6, 1, 10, 30))

        assert result.state == ONGOING
        assert result.remaining == timedelta(minutes=30)
        assert result.is_open

    def test_upcoming_reports_time_until_start(self):
        result = resolve_state(_assessment(), datetime(2024, 6, 1, 9, 15))

        assert result.state == UPCOMING
        assert result.remaining == timedelta(minutes=45)
        assert not result.is_open

    def test_expired_after_end(self):
        result = resolve_state(_assessment(), datetime(2024, 6, 1, 11, 0, 1))

        assert result.state == EXPIRED
        assert result.remaining is None

    def test_window_edges_are_inclusive(self):
        assert resolve_state(_assessment(), datetime(2024, 6, 1, 10, 0)).state == ONGOING
        assert resolve_state(_assessment(), datetime(2024, 6, 1, 11, 0)).state == ONGOING

    def test_24_hour_times(self):
        result = resolve_state(_assessment(start="13:00", end="14:30"), datetime(2024, 6, 1, 14, 0))

        assert result.state == ONGOING
        assert result.remaining_seconds == 30 * 60

    def test_date_object_is_accepted(self):
        result = resolve_state(_assessment(day=date(2024, 6, 1)), datetime(2024, 6, 1, 10, 30))
        assert result.state == ONGOING

    @pytest.mark.parametrize(
        "assessment",
        [
            _assessment(start="sometime"),
            _assessment(end=None),
            _assessment(day="01/06/2024"),
            _assessment(day=None),
            # end before start is not a valid window
            _assessment(start="11:00 AM", end="10:00 AM"),
        ],
    )
    def test_unparseable_schedule_is_unknown(self, assessment):
        result = resolve_state(assessment, datetime(2024, 6, 1, 10, 30))

        assert result.state == UNKNOWN
        assert not result.is_open

    def test_aware_now_is_converted_to_viewer_zone(self):
        # 08:30 UTC is 10:30 in Europe/Berlin during summer time
        now = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)

        assert resolve_state(_assessment(), now, tz="Europe/Berlin").state == ONGOING
        assert resolve_state(_assessment(), now, tz="UTC").state == UPCOMING

    def test_exactly_one_state_for_any_time(self):
        start = datetime(2024, 6, 1, 8, 0)
        seen = set()
        for minutes in range(0, 240, 7):
            state = resolve_state(_assessment(), start + timedelta(minutes=minutes)).state
            assert state in {UPCOMING, ONGOING, EXPIRED}
            seen.add(state)
        assert seen == {UPCOMING, ONGOING, EXPIRED}

    def test_each_call_reads_the_clock(self, clock):
        assessment = _assessment()

        clock(datetime(2024, 6, 1, 9, 0))
        assert resolve_state(assessment).state == UPCOMING

        clock(datetime(2024, 6, 1, 10, 5))
        assert resolve_state(assessment).state == ONGOING


class TestFormatRemaining:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(hours=1, minutes=5, seconds=9), "1h 5m"),
            (timedelta(minutes=4, seconds=10), "4m 10s"),
            (timedelta(seconds=12), "12s"),
            (timedelta(0), "0s"),
            (None, ""),
        ],
    )
    def test_formats(self, delta, expected):
        assert format_remaining(delta) == expected
