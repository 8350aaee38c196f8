"""SQL adapters against the in-memory SQLite engine configured in conftest."""

import unittest
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select

import models  # noqa: F401
from core.database import ENGINE, SessionLocal
from models.base import Base
from models.class_series import ClassSeries
from models.class_session import ClassSession
from models.class_type import ClassType
from models.scheduling_warning import SchedulingWarning
from models.user_availability import UserAvailability
from models.vacation import Vacation
from scheduling.availability import FULL_DAY
from scheduling.errors import DuplicateOccurrence
from scheduling.policy import SchedulingPolicyLayer
from scheduling.types import NewOccurrence, OccurrenceStatus, SeriesStatus, TimeSlot
from services.availability_service import SqlAvailabilityLookup
from services.class_type_lookup import SqlClassTypeLookup
from services.policy_store import SqlPolicyStore
from services.repository import SqlSchedulingRepository
from services.scheduling_factory import build_engine, build_orchestrator
from services.warning_sink import SqlWarningSink


TODAY = date(2025, 1, 1)
D = date(2025, 1, 8)


class SqlTestCase(unittest.TestCase):
    def setUp(self):
        Base.metadata.drop_all(ENGINE)
        Base.metadata.create_all(ENGINE)
        self.db = SessionLocal()
        self.repo = SqlSchedulingRepository(self.db)

    def tearDown(self):
        self.db.close()
        Base.metadata.drop_all(ENGINE)

    def add_series(self, **overrides):
        values = dict(
            branch_id=uuid.uuid4(),
            teacher_id=uuid.uuid4(),
            student_id=uuid.uuid4(),
            booth_id=uuid.uuid4(),
            start_date=TODAY,
            start_time=time(16, 0),
            end_time=time(17, 30),
            days_of_week=[1, 3, 5],
            status="ACTIVE",
        )
        values.update(overrides)
        row = ClassSeries(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def add_session(self, **overrides):
        values = dict(date=D, start_time=time(16, 0), end_time=time(17, 30), status="CONFIRMED")
        values.update(overrides)
        row = ClassSession(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def new_occurrence(self, series, on_date=D):
        return NewOccurrence(
            date=on_date,
            start_time=series.start_time,
            end_time=series.end_time,
            status=OccurrenceStatus.CONFIRMED,
            series_id=series.id,
            teacher_id=series.teacher_id,
            branch_id=series.branch_id,
        )


class TestOccurrences(SqlTestCase):
    def test_duplicate_series_date_raises_and_keeps_transaction_usable(self):
        series = self.add_series()
        created = self.repo.create_occurrence(self.new_occurrence(series))
        self.assertEqual(created.series_id, series.id)

        with self.assertRaises(DuplicateOccurrence):
            self.repo.create_occurrence(self.new_occurrence(series))

        self.repo.create_occurrence(self.new_occurrence(series, date(2025, 1, 10)))
        self.db.commit()
        count = self.db.execute(select(func.count()).select_from(ClassSession)).scalar_one()
        self.assertEqual(count, 2)

    def test_neighbor_lookup_ors_resources(self):
        teacher, booth = uuid.uuid4(), uuid.uuid4()
        by_teacher = self.add_session(teacher_id=teacher)
        by_booth = self.add_session(booth_id=booth, start_time=time(9, 0), end_time=time(10, 0))
        self.add_session(teacher_id=uuid.uuid4(), booth_id=uuid.uuid4())
        self.add_session(teacher_id=teacher, is_cancelled=True)
        self.add_session(teacher_id=teacher, date=date(2025, 1, 9))

        found = self.repo.find_occurrences(dates=[D], teacher_id=teacher, booth_id=booth)
        self.assertEqual([o.id for o in found], [by_booth.id, by_teacher.id])

        with_cancelled = self.repo.find_occurrences(dates=[D], teacher_id=teacher, include_cancelled=True)
        self.assertEqual(len(with_cancelled), 2)
        self.assertEqual(self.repo.find_occurrences(dates=[]), [])

    def test_cancel_and_reactivate(self):
        row = self.add_session(teacher_id=uuid.uuid4())
        at = datetime(2025, 1, 2, 9, 0, tzinfo=timezone.utc)

        cancelled = self.repo.cancel_occurrences([row.id, "not-a-uuid"], reason="closed", actor="staff-1", at=at)
        self.assertEqual([o.id for o in cancelled], [row.id])
        self.assertTrue(row.is_cancelled)
        self.assertEqual(row.cancellation_reason, "closed")
        self.assertEqual(row.cancelled_by, "staff-1")
        self.assertEqual(self.repo.cancel_occurrences([row.id], reason="x", actor=None, at=at), [])

        reactivated = self.repo.reactivate_occurrences([str(row.id)])
        self.assertEqual([o.id for o in reactivated], [row.id])
        self.assertFalse(row.is_cancelled)
        self.assertIsNone(row.cancellation_reason)

    def test_series_edit_touches_only_sessions_from_the_cutoff(self):
        series = self.add_series()
        past = self.add_session(series_id=series.id, date=date(2024, 12, 30))
        upcoming = self.add_session(series_id=series.id, date=D)
        booth = uuid.uuid4()

        updated = self.repo.update_series_occurrences(
            series.id, TODAY, {"booth_id": str(booth), "end_time": time(18, 0), "notes": "moved"}
        )

        self.assertEqual([o.id for o in updated], [upcoming.id])
        self.assertEqual((updated[0].booth_id, updated[0].end_time), (booth, time(18, 0)))
        self.assertEqual(upcoming.notes, "moved")
        self.assertIsNone(past.booth_id)

    def test_status_update(self):
        row = self.add_session()
        self.repo.update_occurrence_status(row.id, OccurrenceStatus.CONFLICTED)
        self.db.expire_all()
        self.assertEqual(self.repo.get_occurrence(row.id).status, OccurrenceStatus.CONFLICTED)
        self.assertIsNone(self.repo.get_occurrence("nope"))


class TestSeries(SqlTestCase):
    def test_watermark_never_moves_backwards(self):
        series = self.add_series()
        self.repo.update_series_watermark(series.id, date(2025, 1, 31))
        self.repo.update_series_watermark(series.id, date(2025, 1, 10))
        self.db.expire_all()
        self.assertEqual(self.repo.get_series(series.id).last_generated_through, date(2025, 1, 31))

        self.repo.update_series_watermark(series.id, date(2025, 2, 28), status=SeriesStatus.ENDED)
        self.db.expire_all()
        stored = self.repo.get_series(series.id)
        self.assertEqual(stored.last_generated_through, date(2025, 2, 28))
        self.assertEqual(stored.status, SeriesStatus.ENDED)

    def test_find_series_filters(self):
        a = self.add_series()
        self.add_series(status="PAUSED")
        self.add_series(branch_id=a.branch_id)

        self.assertEqual(len(self.repo.find_series(status=SeriesStatus.ACTIVE)), 2)
        self.assertEqual(len(self.repo.find_series(branch_id=a.branch_id)), 2)
        self.assertEqual([s.id for s in self.repo.find_series(series_id=a.id)], [a.id])
        self.assertEqual(len(self.repo.find_series(limit=1)), 1)
        self.assertEqual(self.repo.get_series(a.id).days_of_week, (1, 3, 5))

    def test_branch_and_global_vacations(self):
        branch = uuid.uuid4()
        self.db.add_all(
            [
                Vacation(branch_id=branch, name="Winter", start_date=D, end_date=date(2025, 1, 10)),
                Vacation(
                    branch_id=None,
                    name="New Year",
                    start_date=date(2024, 12, 29),
                    end_date=date(2025, 1, 3),
                    is_recurring=True,
                ),
                Vacation(branch_id=uuid.uuid4(), name="Other", start_date=D, end_date=D),
            ]
        )
        self.db.flush()
        names = sorted(v.name for v in self.repo.get_branch_vacations(branch))
        self.assertEqual(names, ["New Year", "Winter"])


class TestEngineOnSql(SqlTestCase):
    def test_advance_is_idempotent(self):
        series = self.add_series()
        self.db.commit()

        engine = build_engine(self.db)
        first = engine.advance(series.id, today=TODAY)
        self.db.commit()
        self.assertEqual(first.created_confirmed, 14)

        second = build_engine(self.db).advance(series.id, today=TODAY)
        self.assertTrue(second.up_to_date)
        count = self.db.execute(select(func.count()).select_from(ClassSession)).scalar_one()
        self.assertEqual(count, 14)
        self.db.expire_all()
        self.assertEqual(self.db.get(ClassSeries, series.id).last_generated_through, date(2025, 1, 31))

    def test_hard_conflict_with_existing_session(self):
        series = self.add_series()
        existing = self.add_session(booth_id=series.booth_id, start_time=time(17, 0), end_time=time(18, 0))
        self.db.commit()

        result = build_engine(self.db).advance(series.id, today=TODAY)
        self.assertEqual(result.created_conflicted, 1)
        self.db.commit()
        self.db.expire_all()
        self.assertEqual(self.db.get(ClassSession, existing.id).status, "CONFLICTED")

    def test_orchestrator_commits_each_series(self):
        self.add_series()
        self.add_series()
        self.db.commit()

        summary = build_orchestrator(self.db).run(TODAY)
        self.assertEqual(summary.processed, 2)
        self.assertEqual(summary.created_confirmed, 28)

        other = SessionLocal()
        try:
            count = other.execute(select(func.count()).select_from(ClassSession)).scalar_one()
        finally:
            other.close()
        self.assertEqual(count, 28)


class TestAvailability(SqlTestCase):
    def setUp(self):
        super().setUp()
        self.user = uuid.uuid4()
        self.lookup = SqlAvailabilityLookup(self.db)

    def add(self, **values):
        self.db.add(UserAvailability(user_id=self.user, **values))
        self.db.flush()

    def test_regular_slots_by_weekday(self):
        self.add(type="REGULAR", day_of_week=3, start_time=time(9, 0), end_time=time(12, 0))
        self.add(type="REGULAR", day_of_week=3, start_time=time(12, 0), end_time=time(15, 0))
        self.add(type="REGULAR", day_of_week=3, start_time=time(18, 0), end_time=time(20, 0), status="PENDING")
        self.assertEqual(self.lookup.get_availability(self.user, 3), [TimeSlot(540, 900)])
        self.assertEqual(self.lookup.get_availability(self.user, 4), [])

    def test_exception_replaces_regular_and_absence_cuts(self):
        self.add(type="REGULAR", day_of_week=3, start_time=time(9, 0), end_time=time(12, 0))
        self.add(type="EXCEPTION", date=D, start_time=time(14, 0), end_time=time(20, 0))
        self.add(type="ABSENCE", date=D, start_time=time(16, 0), end_time=time(17, 0))
        self.assertEqual(
            self.lookup.get_availability(self.user, 3, on_date=D),
            [TimeSlot(840, 960), TimeSlot(1020, 1200)],
        )
        self.assertEqual(self.lookup.get_absences(self.user, D), [TimeSlot(960, 1020)])

    def test_full_day_rows(self):
        self.add(type="ABSENCE", date=D, full_day=True)
        self.assertEqual(self.lookup.get_absences(self.user, D), [FULL_DAY])


class TestPolicyStoreAndWarnings(SqlTestCase):
    def test_branch_upsert_keeps_unset_fields(self):
        store = SqlPolicyStore(self.db)
        branch = uuid.uuid4()
        self.assertIsNone(store.get_branch_config(branch))

        store.upsert_branch_config(branch, SchedulingPolicyLayer(generation_months=2))
        store.upsert_branch_config(branch, SchedulingPolicyLayer(mark_teacher_unavailable=True))

        layer = store.get_branch_config(branch)
        self.assertEqual(layer.generation_months, 2)
        self.assertTrue(layer.mark_teacher_unavailable)
        self.assertIsNone(layer.mark_booth_conflict)

    def test_global_update(self):
        store = SqlPolicyStore(self.db)
        self.assertIsNone(store.get_global_config())
        store.update_global_config(SchedulingPolicyLayer(mark_no_shared_availability=True))
        store.update_global_config(SchedulingPolicyLayer(generation_months=3))
        layer = store.get_global_config()
        self.assertTrue(layer.mark_no_shared_availability)
        self.assertEqual(layer.generation_months, 3)

    def test_warning_sink_logs_and_stores(self):
        sink = SqlWarningSink(self.db)
        with self.assertLogs("services.warning_sink", level="WARNING"):
            sink.record_warning("series:1", ["first", "second"])
        sink.record_warning("series:1", [])
        rows = self.db.execute(select(SchedulingWarning).order_by(SchedulingWarning.message)).scalars().all()
        self.assertEqual(
            [(r.context, r.message, r.severity) for r in rows],
            [("series:1", "first", "WARN"), ("series:1", "second", "WARN")],
        )

    def test_class_type_lookup(self):
        root = ClassType(id=uuid.uuid4(), name="特別授業")
        child = ClassType(id=uuid.uuid4(), name="Trial", parent_id=root.id)
        self.db.add_all([root, child])
        self.db.flush()
        lookup = SqlClassTypeLookup(self.db)
        node = lookup.get_class_type(child.id)
        self.assertEqual((node.name, node.parent_id), ("Trial", root.id))
        self.assertIsNone(lookup.get_class_type(uuid.uuid4()))
        self.assertIsNone(lookup.get_class_type("bad"))

    def test_warning_sink_stores_each_message_once_per_context(self):
        sink = SqlWarningSink(self.db)
        with self.assertLogs("services.warning_sink", level="WARNING"):
            for _ in range(3):
                sink.record_warning("series:1", ["generationMonths clamped", "generationMonths clamped"])
            sink.record_warning("series:2", ["generationMonths clamped"])
        rows = self.db.execute(
            select(SchedulingWarning.context, SchedulingWarning.message).order_by(SchedulingWarning.context)
        ).all()
        self.assertEqual(
            [tuple(r) for r in rows],
            [("series:1", "generationMonths clamped"), ("series:2", "generationMonths clamped")],
        )
