from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from scheduling.availability import covers_window, intersect_slots
from scheduling.ports import AvailabilityLookup
from scheduling.timeutil import day_of_week, overlaps, to_minutes
from scheduling.types import (
    AVAILABILITY_CONFLICT_TYPES,
    HARD_CONFLICT_TYPES,
    ConflictReason,
    ConflictType,
    OccurrenceData,
    SessionContext,
    TimeSlot,
)


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Effective free slots of the teacher and student on the candidate's date.

    `None` means the party was not looked up (unassigned, or the caller skipped
    the soft path); an empty tuple means the party declared nothing that day.
    """

    teacher_slots: tuple[TimeSlot, ...] | None = None
    student_slots: tuple[TimeSlot, ...] | None = None


def availability_snapshot(
    lookup: AvailabilityLookup,
    candidate: SessionContext,
    cache: dict | None = None,
) -> AvailabilitySnapshot:
    """Look up both parties' effective slots for the candidate's date."""

    weekday = day_of_week(candidate.date)

    def slots_for(user_id) -> tuple[TimeSlot, ...] | None:
        if user_id is None:
            return None
        key = (user_id, candidate.date)
        if cache is not None and key in cache:
            return cache[key]
        slots = tuple(lookup.get_availability(user_id, weekday, on_date=candidate.date))
        if cache is not None:
            cache[key] = slots
        return slots

    return AvailabilitySnapshot(
        teacher_slots=slots_for(candidate.teacher_id),
        student_slots=slots_for(candidate.student_id),
    )


def find_hard_conflicts(
    candidate: SessionContext,
    neighbors: Iterable[OccurrenceData],
) -> list[ConflictReason]:
    reasons: list[ConflictReason] = []
    if candidate.teacher_id is None and candidate.student_id is None and candidate.booth_id is None:
        return reasons

    start = candidate.start_minutes
    end = candidate.end_minutes
    for other in neighbors:
        if other.is_cancelled:
            continue
        if candidate.class_id is not None and other.id == candidate.class_id:
            continue
        if other.date != candidate.date:
            continue
        if not overlaps(start, end, to_minutes(other.start_time), to_minutes(other.end_time)):
            continue

        if candidate.teacher_id is not None and other.teacher_id == candidate.teacher_id:
            reasons.append(ConflictReason(ConflictType.TEACHER_CONFLICT, candidate.teacher_id, other.id))
        if candidate.student_id is not None and other.student_id == candidate.student_id:
            reasons.append(ConflictReason(ConflictType.STUDENT_CONFLICT, candidate.student_id, other.id))
        if candidate.booth_id is not None and other.booth_id == candidate.booth_id:
            reasons.append(ConflictReason(ConflictType.BOOTH_CONFLICT, candidate.booth_id, other.id))
    return reasons


def _party_reason(
    slots: Sequence[TimeSlot],
    start: int,
    end: int,
    *,
    unavailable: ConflictType,
    wrong_time: ConflictType,
    resource_id,
) -> ConflictReason | None:
    if covers_window(slots, start, end):
        return None
    if not slots:
        return ConflictReason(unavailable, resource_id)
    return ConflictReason(wrong_time, resource_id)


def find_availability_conflicts(
    candidate: SessionContext,
    availability: AvailabilitySnapshot,
    *,
    allow_outside_teacher: bool = False,
    allow_outside_student: bool = False,
) -> list[ConflictReason]:
    reasons: list[ConflictReason] = []
    start = candidate.start_minutes
    end = candidate.end_minutes

    teacher_slots = availability.teacher_slots if candidate.teacher_id is not None else None
    student_slots = availability.student_slots if candidate.student_id is not None else None

    if teacher_slots is not None and not allow_outside_teacher:
        r = _party_reason(
            teacher_slots,
            start,
            end,
            unavailable=ConflictType.TEACHER_UNAVAILABLE,
            wrong_time=ConflictType.TEACHER_WRONG_TIME,
            resource_id=candidate.teacher_id,
        )
        if r is not None:
            reasons.append(r)

    if student_slots is not None and not allow_outside_student:
        r = _party_reason(
            student_slots,
            start,
            end,
            unavailable=ConflictType.STUDENT_UNAVAILABLE,
            wrong_time=ConflictType.STUDENT_WRONG_TIME,
            resource_id=candidate.student_id,
        )
        if r is not None:
            reasons.append(r)

    # Both parties are free at some point that day but never at the same time.
    if teacher_slots and student_slots and not intersect_slots(teacher_slots, student_slots):
        reasons.append(ConflictReason(ConflictType.NO_SHARED_AVAILABILITY))

    return reasons


def classify(
    candidate: SessionContext,
    neighbors: Iterable[OccurrenceData],
    availability: AvailabilitySnapshot | None = None,
    *,
    allow_outside_teacher: bool = False,
    allow_outside_student: bool = False,
) -> list[ConflictReason]:
    """All conflict reasons for one candidate placement.

    Pure function of its arguments: the same candidate, neighbor snapshot and
    availability snapshot always yield the same reasons in the same order.
    """

    reasons = find_hard_conflicts(candidate, neighbors)
    if availability is not None:
        reasons.extend(
            find_availability_conflicts(
                candidate,
                availability,
                allow_outside_teacher=allow_outside_teacher,
                allow_outside_student=allow_outside_student,
            )
        )
    return reasons


def has_hard_conflict(reasons: Iterable[ConflictReason]) -> bool:
    return any(r.type in HARD_CONFLICT_TYPES for r in reasons)


def filter_by_availability_preference(
    reasons: Sequence[ConflictReason],
    include_availability: bool,
) -> list[ConflictReason]:
    """Drop availability-derived reasons when the caller hides them (display only)."""

    if include_availability:
        return list(reasons)
    return [r for r in reasons if r.type not in AVAILABILITY_CONFLICT_TYPES]
