"""Tests for the advance-generation engine."""

import dataclasses
import unittest
from datetime import date, time

from fakes import (
    TODAY,
    FakeAvailability,
    FakeClassTypeLookup,
    FakePolicyStore,
    InMemoryRepository,
    RecordingWarningSink,
    node,
    slot,
)
from scheduling.advance import (
    AdvanceGenerationEngine,
    candidate_dates,
    compute_advance_window,
    compute_horizon_end,
)
from scheduling.class_types import SpecialClassTypeResolver
from scheduling.errors import InvalidTimeRange, InvalidWeekdaySet, SeriesNotActive, SeriesNotFound
from scheduling.policy import SchedulingPolicyLayer, SchedulingPolicyResolver
from scheduling.status import OccurrenceStatusService
from scheduling.timeutil import day_of_week
from scheduling.types import OccurrenceStatus, SeriesStatus


JAN_31 = date(2025, 1, 31)


class EngineTestCase(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.store = FakePolicyStore()
        self.sink = RecordingWarningSink()
        self.class_types = FakeClassTypeLookup()

    def engine(self, availability=None):
        policy = SchedulingPolicyResolver(self.store, warning_sink=self.sink)
        return AdvanceGenerationEngine(
            self.repo,
            policy,
            availability=availability,
            neighbor_status=OccurrenceStatusService(self.repo, policy, availability=availability),
            special_class_types=SpecialClassTypeResolver(self.class_types, special_name="特別授業"),
        )

    def advance(self, series, **kwargs):
        kwargs.setdefault("today", TODAY)
        return self.engine(kwargs.pop("availability", None)).advance(series.id, **kwargs)


class TestWindow(unittest.TestCase):
    def test_horizon_is_clamped_to_end_date(self):
        self.assertEqual(compute_horizon_end(TODAY, None, 30), JAN_31)
        self.assertEqual(compute_horizon_end(TODAY, date(2025, 1, 15), 30), date(2025, 1, 15))
        self.assertEqual(compute_horizon_end(TODAY, None, 0), date(2025, 1, 2))

    def test_window_never_backfills_past_dates(self):
        window = compute_advance_window(TODAY, date(2024, 12, 1), date(2024, 11, 1), None, 30)
        self.assertEqual(window.start, TODAY)

    def test_window_resumes_after_watermark(self):
        window = compute_advance_window(TODAY, date(2025, 1, 10), date(2024, 11, 1), None, 30)
        self.assertEqual((window.start, window.end), (date(2025, 1, 11), JAN_31))

    def test_window_respects_future_start_date(self):
        window = compute_advance_window(TODAY, None, date(2025, 1, 20), None, 30)
        self.assertEqual(window.start, date(2025, 1, 20))
        self.assertEqual(len(candidate_dates(window, (1, 3, 5))), 6)


class TestFirstRun(EngineTestCase):
    def test_scenario_a(self):
        series = self.repo.add_series()
        result = self.advance(series)

        created = self.repo.series_occurrences(series.id)
        self.assertEqual(result.created_confirmed, 14)
        self.assertEqual(result.created_conflicted, 0)
        self.assertEqual(len(created), 14)
        self.assertTrue(all(o.status == OccurrenceStatus.CONFIRMED for o in created))
        self.assertEqual(created[0].date, TODAY)
        self.assertEqual(created[-1].date, JAN_31)
        self.assertEqual(result.last_generated_through, JAN_31)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, JAN_31)

    def test_weekday_fidelity(self):
        series = self.repo.add_series(days_of_week=(0, 6))
        self.advance(series)
        dates = [o.date for o in self.repo.series_occurrences(series.id)]
        self.assertEqual(len(dates), 8)
        self.assertTrue(all(day_of_week(d) in (0, 6) for d in dates))

    def test_occurrences_copy_series_fields(self):
        series = self.repo.add_series(subject_id="math", class_type_id="regular", notes="bring book")
        self.advance(series, lead_days=1)
        (occurrence,) = self.repo.series_occurrences(series.id)
        self.assertEqual(occurrence.teacher_id, "teacher-1")
        self.assertEqual(occurrence.booth_id, "booth-1")
        self.assertEqual(occurrence.subject_id, "math")
        self.assertEqual(occurrence.start_time, time(16, 0))
        self.assertEqual(occurrence.branch_id, "branch-1")

    def test_explicit_lead_days_override_policy(self):
        series = self.repo.add_series()
        result = self.advance(series, lead_days=7)
        self.assertEqual(result.to_date, date(2025, 1, 8))
        self.assertEqual(result.created, 4)

    def test_generation_months_from_branch_policy(self):
        self.store.branches["branch-1"] = SchedulingPolicyLayer(generation_months=2)
        result = self.advance(self.repo.add_series())
        self.assertEqual(result.to_date, date(2025, 3, 2))

    def test_result_dict_shape(self):
        result = self.advance(self.repo.add_series(), lead_days=2).to_dict()
        self.assertEqual(result["fromDate"], "2025-01-01")
        self.assertEqual(result["toDate"], "2025-01-03")
        self.assertEqual(result["createdConfirmed"], 2)
        self.assertEqual(result["lastGeneratedThrough"], "2025-01-03")
        self.assertFalse(result["upToDate"])


class TestIdempotence(EngineTestCase):
    def test_second_run_is_up_to_date(self):
        series = self.repo.add_series()
        self.advance(series)
        again = self.advance(series)
        self.assertTrue(again.up_to_date)
        self.assertEqual(again.created, 0)
        self.assertEqual(len(self.repo.series_occurrences(series.id)), 14)

    def test_rerun_over_existing_dates_skips_them_all(self):
        series = self.repo.add_series()
        self.advance(series)
        # Lose the watermark: every date already has an occurrence.
        self.repo.series[series.id] = dataclasses.replace(self.repo.series[series.id], last_generated_through=None)
        again = self.advance(series)
        self.assertEqual(again.created, 0)
        self.assertEqual(again.skipped, 14)
        self.assertEqual({d["reason"] for d in again.skipped_dates}, {"EXISTS"})
        self.assertEqual(len(self.repo.series_occurrences(series.id)), 14)

    def test_cancelled_occurrence_is_not_regenerated(self):
        series = self.repo.add_series()
        self.advance(series, lead_days=1)
        (occurrence,) = self.repo.series_occurrences(series.id)
        self.repo.cancel_occurrences([occurrence.id], reason="x", actor=None, at=None)
        self.repo.series[series.id] = dataclasses.replace(self.repo.series[series.id], last_generated_through=None)
        again = self.advance(series, lead_days=1)
        self.assertEqual(again.skipped, 1)
        self.assertEqual(len(self.repo.series_occurrences(series.id)), 1)

    def test_next_day_only_generates_new_dates(self):
        series = self.repo.add_series()
        self.advance(series)
        result = self.advance(series, today=date(2025, 1, 3))
        # Window is Feb 1 .. Feb 2: Saturday and Sunday.
        self.assertEqual((result.from_date, result.to_date), (date(2025, 2, 1), date(2025, 2, 2)))
        self.assertEqual(result.attempted, 0)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, date(2025, 2, 2))

    def test_concurrent_duplicate_counts_as_skipped(self):
        series = self.repo.add_series()
        self.repo.duplicate_on.add(date(2025, 1, 3))
        result = self.advance(series)
        self.assertEqual(result.created, 13)
        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.skipped_dates, [{"date": "2025-01-03", "reason": "DUPLICATE"}])
        self.assertEqual(result.last_generated_through, JAN_31)


class TestWatermark(EngineTestCase):
    def test_end_date_clamps_watermark_and_ends_series(self):
        series = self.repo.add_series(end_date=date(2025, 1, 15))
        result = self.advance(series)
        self.assertEqual(result.created, 7)
        self.assertTrue(result.ended)
        stored = self.repo.get_series(series.id)
        self.assertEqual(stored.last_generated_through, date(2025, 1, 15))
        self.assertEqual(stored.status, SeriesStatus.ENDED)

    def test_window_after_end_date_ends_series_without_writes(self):
        series = self.repo.add_series(start_date=date(2024, 11, 1), end_date=date(2024, 12, 31))
        result = self.advance(series)
        self.assertTrue(result.ended)
        self.assertTrue(result.up_to_date)
        self.assertEqual(self.repo.series_occurrences(series.id), [])
        self.assertEqual(self.repo.get_series(series.id).status, SeriesStatus.ENDED)

    def test_watermark_never_moves_backwards(self):
        series = self.repo.add_series(last_generated_through=date(2025, 3, 1))
        result = self.advance(series)
        self.assertTrue(result.up_to_date)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, date(2025, 3, 1))

    def test_failed_date_holds_watermark_and_is_retried(self):
        series = self.repo.add_series()
        self.repo.fail_on.add(date(2025, 1, 8))
        with self.assertLogs("scheduling.advance", level="ERROR"):
            first = self.advance(series)
        self.assertEqual(first.failed, 1)
        self.assertEqual(first.failed_dates, [date(2025, 1, 8)])
        self.assertEqual(first.created, 13)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, date(2025, 1, 7))

        self.repo.fail_on.clear()
        second = self.advance(series)
        self.assertEqual(second.created, 1)
        self.assertEqual(second.skipped, 10)
        self.assertEqual(len(self.repo.series_occurrences(series.id)), 14)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, JAN_31)

    def test_failure_on_first_date_keeps_watermark(self):
        series = self.repo.add_series(last_generated_through=date(2024, 12, 31))
        self.repo.fail_on.add(TODAY)
        with self.assertLogs("scheduling.advance", level="ERROR"):
            result = self.advance(series)
        self.assertEqual(result.failed, 1)
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, date(2024, 12, 31))


class TestConflictsDuringGeneration(EngineTestCase):
    def test_existing_booth_booking_marks_that_date_conflicted(self):
        other = self.repo.add_occurrence(
            date=date(2025, 1, 8), start_time=time(16, 30), end_time=time(17, 0), booth_id="booth-1"
        )
        series = self.repo.add_series()
        result = self.advance(series)
        self.assertEqual(result.created_conflicted, 1)
        self.assertEqual(result.created_confirmed, 13)
        conflicted = [o for o in self.repo.series_occurrences(series.id) if o.status == OccurrenceStatus.CONFLICTED]
        self.assertEqual([o.date for o in conflicted], [date(2025, 1, 8)])
        self.assertEqual(self.repo.get_occurrence(other.id).status, OccurrenceStatus.CONFLICTED)

    def test_two_series_sharing_a_booth_both_end_conflicted(self):
        first = self.repo.add_series(teacher_id="teacher-1", student_id="student-1", booth_id="b1")
        second = self.repo.add_series(teacher_id="teacher-2", student_id="student-2", booth_id="b1")

        self.assertEqual(self.advance(first, lead_days=1).created_confirmed, 1)
        self.assertEqual(self.advance(second, lead_days=1).created_conflicted, 1)

        statuses = [self.repo.series_occurrences(s.id)[0].status for s in (first, second)]
        self.assertEqual(statuses, [OccurrenceStatus.CONFLICTED, OccurrenceStatus.CONFLICTED])

    def test_neighbor_recompute_failure_keeps_the_new_occurrence(self):
        first = self.repo.add_series(teacher_id="teacher-1", student_id="student-1", booth_id="b1")
        self.advance(first, lead_days=1)
        blocked = self.repo.series_occurrences(first.id)[0].id
        self.repo.fail_status_update_for.add(blocked)

        second = self.repo.add_series(teacher_id="teacher-2", student_id="student-2", booth_id="b1")
        with self.assertLogs("scheduling.advance", level="ERROR"):
            result = self.advance(second, lead_days=1)
        self.assertEqual(result.created_conflicted, 1)
        self.assertEqual(result.failed, 0)

    def test_cancelled_booking_does_not_conflict(self):
        self.repo.add_occurrence(date=date(2025, 1, 8), booth_id="booth-1", is_cancelled=True)
        result = self.advance(self.repo.add_series())
        self.assertEqual(result.created_conflicted, 0)

    def _mismatched_availability(self):
        return FakeAvailability(
            weekly={("teacher-1", d): [slot("09:00", "12:00")] for d in (1, 3, 5)}
            | {("student-1", d): [slot("15:00", "19:00")] for d in (1, 3, 5)}
        )

    def test_soft_reasons_do_not_mark_by_default(self):
        series = self.repo.add_series()
        result = self.advance(series, availability=self._mismatched_availability())
        self.assertEqual(result.created_conflicted, 0)
        self.assertEqual(result.created_confirmed, 14)

    def test_soft_reason_marks_when_flag_enabled(self):
        series = self.repo.add_series(conflict_policy={"markAsConflicted": {"TEACHER_WRONG_TIME": True}})
        result = self.advance(series, availability=self._mismatched_availability())
        self.assertEqual(result.created_conflicted, 14)

    def test_preview_lists_soft_reasons(self):
        series = self.repo.add_series()
        planned = self.engine(self._mismatched_availability()).preview(series.id, today=TODAY, lead_days=1)
        (first,) = planned
        self.assertEqual(
            [r["type"] for r in first.to_dict()["reasons"]],
            ["TEACHER_WRONG_TIME", "NO_SHARED_AVAILABILITY"],
        )

    def test_allow_outside_availability_suppresses_soft_reasons(self):
        series = self.repo.add_series(
            conflict_policy={
                "markAsConflicted": {"TEACHER_UNAVAILABLE": True},
                "allowOutsideAvailability": {"teacher": True},
            }
        )
        result = self.advance(series, availability=FakeAvailability())
        self.assertEqual(result.created_conflicted, 0)

    def test_absence_creates_cancelled_occurrence(self):
        availability = FakeAvailability(absences={("student-1", date(2025, 1, 8)): [slot("16:00", "18:00")]})
        series = self.repo.add_series()
        self.advance(series, availability=availability)
        by_date = {o.date: o for o in self.repo.series_occurrences(series.id)}
        absent = by_date[date(2025, 1, 8)]
        self.assertTrue(absent.is_cancelled)
        self.assertEqual(self.repo.cancellation_reasons[absent.id], "ABSENCE")
        self.assertFalse(by_date[date(2025, 1, 10)].is_cancelled)

    def test_preview_persists_nothing(self):
        self.repo.add_occurrence(date=date(2025, 1, 3), booth_id="booth-1")
        series = self.repo.add_series()
        planned = self.engine().preview(series.id, today=TODAY)
        self.assertEqual(len(planned), 14)
        jan_3 = [p for p in planned if p.date == date(2025, 1, 3)][0]
        self.assertEqual(jan_3.to_dict()["status"], "CONFLICTED")
        self.assertEqual(self.repo.series_occurrences(series.id), [])
        self.assertIsNone(self.repo.get_series(series.id).last_generated_through)


class TestSkips(EngineTestCase):
    def test_branch_vacation_dates_are_skipped_and_passed(self):
        self.repo.add_vacation("branch-1", date(2025, 1, 6), date(2025, 1, 10))
        series = self.repo.add_series()
        result = self.advance(series)
        self.assertEqual(result.created, 11)
        self.assertEqual(result.skipped, 3)
        self.assertEqual({d["reason"] for d in result.skipped_dates}, {"VACATION"})
        self.assertEqual(result.last_generated_through, JAN_31)

    def test_recurring_new_year_vacation(self):
        self.repo.add_vacation("branch-1", date(2020, 12, 29), date(2021, 1, 3), recurring=True)
        result = self.advance(self.repo.add_series())
        self.assertEqual(result.skipped, 2)

    def test_other_branch_vacation_is_ignored(self):
        self.repo.add_vacation("branch-2", date(2025, 1, 6), date(2025, 1, 10))
        result = self.advance(self.repo.add_series())
        self.assertEqual(result.skipped, 0)

    def test_special_class_type_is_a_no_op(self):
        chain = (node("root", "特別授業"), node("child", "Trial", "root"), node("leaf", "Trial A", "child"))
        self.class_types.nodes = {n.id: n for n in chain}
        series = self.repo.add_series(class_type_id="leaf")
        result = self.advance(series)
        self.assertTrue(result.special)
        self.assertEqual(self.repo.series_occurrences(series.id), [])
        self.assertIsNone(self.repo.get_series(series.id).last_generated_through)


class TestValidationAndStatus(EngineTestCase):
    def test_invalid_series_fails_before_any_write(self):
        series = self.repo.add_series(days_of_week=())
        with self.assertRaises(InvalidWeekdaySet):
            self.advance(series)
        bad_time = self.repo.add_series(start_time=time(18, 0), end_time=time(17, 0))
        with self.assertRaises(InvalidTimeRange):
            self.advance(bad_time)
        self.assertEqual(self.repo.occurrences, {})

    def test_manual_advance_refuses_paused_series(self):
        series = self.repo.add_series(status=SeriesStatus.PAUSED)
        with self.assertRaises(SeriesNotActive):
            self.advance(series, require_active=True)

    def test_unknown_series(self):
        with self.assertRaises(SeriesNotFound):
            self.engine().advance("missing", today=TODAY)
