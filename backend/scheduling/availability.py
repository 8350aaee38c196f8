from __future__ import annotations

from typing import Iterable, Sequence

from scheduling.types import TimeSlot


FULL_DAY = TimeSlot(0, 24 * 60 - 1)


def merge_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    """Sort and coalesce touching or overlapping slots."""

    ordered = sorted(s for s in slots if s.end > s.start)
    merged: list[TimeSlot] = []
    for s in ordered:
        if merged and s.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeSlot(last.start, max(last.end, s.end))
        else:
            merged.append(s)
    return merged


def subtract_slots(base: Iterable[TimeSlot], remove: Iterable[TimeSlot]) -> list[TimeSlot]:
    remaining = merge_slots(base)
    for sub in merge_slots(remove):
        nxt: list[TimeSlot] = []
        for b in remaining:
            if sub.end <= b.start or sub.start >= b.end:
                nxt.append(b)
                continue
            if b.start < sub.start:
                nxt.append(TimeSlot(b.start, sub.start))
            if sub.end < b.end:
                nxt.append(TimeSlot(sub.end, b.end))
        remaining = merge_slots(nxt)
        if not remaining:
            break
    return remaining


def intersect_slots(a: Iterable[TimeSlot], b: Iterable[TimeSlot]) -> list[TimeSlot]:
    b_list = list(b)
    out: list[TimeSlot] = []
    for x in a:
        for y in b_list:
            start = max(x.start, y.start)
            end = min(x.end, y.end)
            if start < end:
                out.append(TimeSlot(start, end))
    return merge_slots(out)


def effective_slots(
    regular: Iterable[TimeSlot],
    exceptions: Iterable[TimeSlot] = (),
    absences: Iterable[TimeSlot] = (),
) -> list[TimeSlot]:
    """Free time for one user on one date.

    Date-specific exceptions replace the weekday's regular availability, then
    absences are cut out.
    """

    exception_list = list(exceptions)
    base = exception_list if exception_list else list(regular)
    return subtract_slots(base, absences)


def covers_window(slots: Sequence[TimeSlot], start: int, end: int) -> bool:
    return any(s.covers(start, end) for s in slots)


def overlaps_any(slots: Iterable[TimeSlot], start: int, end: int) -> bool:
    return any(s.start < end and start < s.end for s in slots)
