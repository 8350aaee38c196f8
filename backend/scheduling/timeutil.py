from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator

from scheduling.errors import InvalidTimeFormat, InvalidTimeRange, InvalidWeekdaySet


# Stored times are time-of-day values; datetimes are read on the UTC clock so a
# value persisted on 1970-01-01 and one carrying a session date compare equal.
_HM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

MINUTES_PER_DAY = 24 * 60

# 0 = Sunday ... 6 = Saturday.
WEEKDAY_NAMES = ("SUNDAY", "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY")


def parse_time(value: time | datetime | str) -> time:
    """Normalize a time-of-day input to a naive `datetime.time`."""

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return time(value.hour, value.minute, value.second)
    if isinstance(value, time):
        return time(value.hour, value.minute, value.second)
    if isinstance(value, str):
        m = _HM_RE.match(value.strip())
        if m is None:
            raise InvalidTimeFormat(f"Invalid time {value!r}; expected HH:MM")
        hours, minutes = int(m.group(1)), int(m.group(2))
        seconds = int(m.group(3) or 0)
        if hours > 23 or minutes > 59 or seconds > 59:
            raise InvalidTimeFormat(f"Invalid time {value!r}; out of range")
        return time(hours, minutes, seconds)
    raise InvalidTimeFormat(f"Invalid time value of type {type(value).__name__}")


def to_minutes(value: time | datetime | str) -> int:
    t = parse_time(value)
    return t.hour * 60 + t.minute


def minutes_to_time(minutes: int) -> time:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidTimeFormat(f"Minute offset {minutes} is outside a day")
    return time(minutes // 60, minutes % 60)


def format_hm(value: time | int) -> str:
    if isinstance(value, int):
        value = minutes_to_time(value)
    return f"{value.hour:02d}:{value.minute:02d}"


def overlaps(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open interval overlap: [start1, end1) and [start2, end2)."""

    return start1 < end2 and start2 < end1


def validate_time_window(start: time | datetime | str, end: time | datetime | str) -> tuple[time, time]:
    start_t = parse_time(start)
    end_t = parse_time(end)
    if to_minutes(end_t) <= to_minutes(start_t):
        raise InvalidTimeRange(f"End time {format_hm(end_t)} must be after start time {format_hm(start_t)}")
    return start_t, end_t


def parse_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidTimeFormat(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc


def day_of_week(d: date) -> int:
    return (d.weekday() + 1) % 7


def weekday_name(d: date) -> str:
    return WEEKDAY_NAMES[day_of_week(d)]


def validate_days_of_week(days: Iterable) -> tuple[int, ...]:
    """Validate a weekday set and return it sorted and de-duplicated."""

    if days is None:
        raise InvalidWeekdaySet("daysOfWeek is required")
    out: set[int] = set()
    for raw in days:
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            raise InvalidWeekdaySet(f"Invalid weekday {raw!r}")
        try:
            n = int(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidWeekdaySet(f"Invalid weekday {raw!r}") from exc
        if not 0 <= n <= 6:
            raise InvalidWeekdaySet(f"Weekday {n} is outside 0..6")
        out.add(n)
    if not out:
        raise InvalidWeekdaySet("daysOfWeek must not be empty")
    return tuple(sorted(out))


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date in [start, end]."""

    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)
