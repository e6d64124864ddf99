"""Schedule resolution for assessment time windows.

An assessment stores a calendar date plus wall-clock start/end strings. The
resolver combines them into two local timestamps and classifies "now" against
that window. It holds no state and must be called again whenever "now" moves.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from exam_portal.config import settings

UPCOMING = "upcoming"
ONGOING = "ongoing"
EXPIRED = "expired"
UNKNOWN = "unknown"

_TIME_12H = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$")
_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


@dataclass(frozen=True)
class ScheduleState:
    state: str
    remaining: Optional[timedelta] = None

    @property
    def is_open(self) -> bool:
        return self.state == ONGOING

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.remaining is None:
            return None
        return int(self.remaining.total_seconds())


def parse_time(value: Optional[str]) -> Optional[time]:
    """Parse "10:00 AM" / "10:00am" or "13:30" / "13:30:00"; None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    match = _TIME_12H.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        meridiem = match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if meridiem == "PM" and hour != 12:
            hour += 12
        if meridiem == "AM" and hour == 12:
            hour = 0
        return time(hour, minute)

    match = _TIME_24H.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            return None
        return time(hour, minute, second)

    return None


def parse_date(value: Union[date, str, None]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def format_time_12h(value: time) -> str:
    """Render a time the way the admin form stores it, e.g. "09:05 PM"."""
    return value.strftime("%I:%M %p")


def _zone(tz: Union[str, ZoneInfo, None]) -> ZoneInfo:
    if isinstance(tz, ZoneInfo):
        return tz
    try:
        return ZoneInfo(tz or settings.TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_now(tz: Union[str, ZoneInfo, None] = None) -> datetime:
    """Current naive wall-clock time in the viewer's zone."""
    return datetime.now(_zone(tz)).replace(tzinfo=None)


def to_local(moment: datetime, tz: Union[str, ZoneInfo, None] = None) -> datetime:
    """Naive local wall-clock for ``moment``; naive inputs are taken as local already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(_zone(tz)).replace(tzinfo=None)


def window_for(assessment) -> tuple[Optional[datetime], Optional[datetime]]:
    """Absolute local start/end of an assessment's window, None where unparseable."""
    day = parse_date(getattr(assessment, "date", None))
    start = parse_time(getattr(assessment, "start_time", None))
    end = parse_time(getattr(assessment, "end_time", None))
    if day is None:
        return None, None
    return (
        datetime.combine(day, start) if start else None,
        datetime.combine(day, end) if end else None,
    )


def resolve_state(
    assessment,
    now: Optional[datetime] = None,
    tz: Union[str, ZoneInfo, None] = None,
) -> ScheduleState:
    """Classify ``now`` against the assessment window.

    Never raises: an unparseable date/time, or an end before the start, yields
    ``unknown`` rather than being treated as open.
    """
    start, end = window_for(assessment)
    if start is None or end is None or end < start:
        return ScheduleState(UNKNOWN)

    current = local_now(tz) if now is None else to_local(now, tz)

    if current < start:
        return ScheduleState(UPCOMING, start - current)
    if current <= end:
        return ScheduleState(ONGOING, end - current)
    return ScheduleState(EXPIRED)


def format_remaining(remaining: Optional[timedelta]) -> str:
    """Human countdown: "1h 5m", "4m 10s" or "12s"."""
    if remaining is None:
        return ""
    seconds = max(int(remaining.total_seconds()), 0)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
