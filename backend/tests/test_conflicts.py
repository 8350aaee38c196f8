"""Tests for the conflict classifier."""

import unittest
from datetime import date, time

from fakes import TODAY, FakeAvailability, make_occurrence, slot
from scheduling.conflicts import (
    AvailabilitySnapshot,
    availability_snapshot,
    classify,
    filter_by_availability_preference,
    find_availability_conflicts,
    find_hard_conflicts,
    has_hard_conflict,
)
from scheduling.types import ConflictReason, ConflictType


def types_of(reasons):
    return [r.type for r in reasons]


class TestHardConflicts(unittest.TestCase):
    def setUp(self):
        # Scenario B: same date, time and booth; different teacher and student.
        self.a = make_occurrence(teacher_id="t-a", student_id="s-a", booth_id="booth-1")
        self.b = make_occurrence(teacher_id="t-b", student_id="s-b", booth_id="booth-1")

    def test_shared_booth_conflicts_both_ways(self):
        reasons_a = find_hard_conflicts(self.a.context(), [self.a, self.b])
        reasons_b = find_hard_conflicts(self.b.context(), [self.a, self.b])
        self.assertEqual(types_of(reasons_a), [ConflictType.BOOTH_CONFLICT])
        self.assertEqual(types_of(reasons_b), [ConflictType.BOOTH_CONFLICT])
        self.assertEqual(reasons_a[0].other_class_id, self.b.id)
        self.assertEqual(reasons_a[0].resource_id, "booth-1")

    def test_cancelled_neighbor_is_invisible(self):
        # Scenario C
        cancelled_b = make_occurrence(
            id=self.b.id, teacher_id="t-b", student_id="s-b", booth_id="booth-1", is_cancelled=True
        )
        self.assertEqual(find_hard_conflicts(self.a.context(), [self.a, cancelled_b]), [])

    def test_every_shared_resource_is_reported(self):
        other = make_occurrence(teacher_id="t-a", student_id="s-a", booth_id="booth-1")
        reasons = find_hard_conflicts(self.a.context(), [other])
        self.assertEqual(
            types_of(reasons),
            [ConflictType.TEACHER_CONFLICT, ConflictType.STUDENT_CONFLICT, ConflictType.BOOTH_CONFLICT],
        )

    def test_adjacent_sessions_do_not_conflict(self):
        later = make_occurrence(teacher_id="t-a", start_time=time(17, 30), end_time=time(18, 30))
        self.assertEqual(find_hard_conflicts(self.a.context(), [later]), [])

    def test_other_dates_are_ignored(self):
        tomorrow = make_occurrence(teacher_id="t-a", date=date(2025, 1, 2))
        self.assertEqual(find_hard_conflicts(self.a.context(), [tomorrow]), [])

    def test_unassigned_resources_never_match(self):
        a = make_occurrence(teacher_id=None, student_id=None, booth_id=None)
        b = make_occurrence(teacher_id=None, student_id=None, booth_id=None)
        self.assertEqual(find_hard_conflicts(a.context(), [b]), [])

    def test_has_hard_conflict(self):
        self.assertTrue(has_hard_conflict([ConflictReason(ConflictType.STUDENT_CONFLICT)]))
        self.assertFalse(has_hard_conflict([ConflictReason(ConflictType.TEACHER_WRONG_TIME)]))
        self.assertFalse(has_hard_conflict([]))


class TestAvailabilityConflicts(unittest.TestCase):
    def setUp(self):
        self.candidate = make_occurrence(teacher_id="t", student_id="s").context()

    def test_covered_window_has_no_reasons(self):
        snap = AvailabilitySnapshot(teacher_slots=(slot("15:00", "18:00"),), student_slots=(slot("16:00", "17:30"),))
        self.assertEqual(find_availability_conflicts(self.candidate, snap), [])

    def test_no_declared_availability_is_unavailable(self):
        snap = AvailabilitySnapshot(teacher_slots=(), student_slots=(slot("15:00", "18:00"),))
        self.assertEqual(
            types_of(find_availability_conflicts(self.candidate, snap)),
            [ConflictType.TEACHER_UNAVAILABLE],
        )

    def test_availability_at_another_time_is_wrong_time(self):
        snap = AvailabilitySnapshot(teacher_slots=(slot("15:00", "18:00"),), student_slots=(slot("16:30", "19:00"),))
        self.assertEqual(
            types_of(find_availability_conflicts(self.candidate, snap)),
            [ConflictType.STUDENT_WRONG_TIME],
        )

    def test_no_shared_slot_co_occurs_with_wrong_time(self):
        snap = AvailabilitySnapshot(teacher_slots=(slot("09:00", "12:00"),), student_slots=(slot("18:00", "20:00"),))
        self.assertEqual(
            types_of(find_availability_conflicts(self.candidate, snap)),
            [
                ConflictType.TEACHER_WRONG_TIME,
                ConflictType.STUDENT_WRONG_TIME,
                ConflictType.NO_SHARED_AVAILABILITY,
            ],
        )

    def test_allow_outside_suppresses_only_that_party(self):
        snap = AvailabilitySnapshot(teacher_slots=(), student_slots=())
        reasons = find_availability_conflicts(self.candidate, snap, allow_outside_teacher=True)
        self.assertEqual(types_of(reasons), [ConflictType.STUDENT_UNAVAILABLE])

    def test_unlooked_up_party_is_skipped(self):
        snap = AvailabilitySnapshot(teacher_slots=None, student_slots=(slot("16:00", "17:30"),))
        self.assertEqual(find_availability_conflicts(self.candidate, snap), [])

    def test_classify_is_deterministic_and_orders_hard_first(self):
        neighbor = make_occurrence(teacher_id="t")
        snap = AvailabilitySnapshot(teacher_slots=(), student_slots=(slot("16:00", "17:30"),))
        first = classify(self.candidate, [neighbor], snap)
        second = classify(self.candidate, [neighbor], snap)
        self.assertEqual(first, second)
        self.assertEqual(types_of(first), [ConflictType.TEACHER_CONFLICT, ConflictType.TEACHER_UNAVAILABLE])

    def test_filter_by_availability_preference(self):
        reasons = [
            ConflictReason(ConflictType.BOOTH_CONFLICT),
            ConflictReason(ConflictType.TEACHER_UNAVAILABLE),
            ConflictReason(ConflictType.NO_SHARED_AVAILABILITY),
        ]
        self.assertEqual(types_of(filter_by_availability_preference(reasons, False)), [ConflictType.BOOTH_CONFLICT])
        self.assertEqual(filter_by_availability_preference(reasons, True), reasons)

    def test_snapshot_reads_weekday_and_caches(self):
        lookup = FakeAvailability(weekly={("t", 3): [slot("15:00", "18:00")]})
        cache = {}
        snap = availability_snapshot(lookup, self.candidate, cache)
        availability_snapshot(lookup, self.candidate, cache)
        self.assertEqual(snap.teacher_slots, (slot("15:00", "18:00"),))
        self.assertEqual(snap.student_slots, ())
        self.assertEqual(lookup.calls, 2)
        self.assertEqual(TODAY.isoweekday() % 7, 3)
