from __future__ import annotations

from datetime import date
from typing import Iterable

from scheduling.types import Vacation


def _month_day(d: date) -> int:
    return d.month * 100 + d.day


def is_vacation_date(d: date, vacations: Iterable[Vacation]) -> bool:
    """True when `d` falls inside any vacation (inclusive bounds).

    Recurring vacations repeat every year by month/day; a range whose end
    precedes its start wraps over New Year (e.g. Dec 25 - Jan 3).
    """

    target = _month_day(d)
    for v in vacations:
        if not v.is_recurring:
            if v.start_date <= d <= v.end_date:
                return True
            continue
        start = _month_day(v.start_date)
        end = _month_day(v.end_date)
        if start <= end:
            if start <= target <= end:
                return True
        elif target >= start or target <= end:
            return True
    return False
