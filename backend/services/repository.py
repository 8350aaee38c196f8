from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.class_series import ClassSeries
from models.class_session import ClassSession
from models.vacation import Vacation as VacationRow
from scheduling.errors import DuplicateOccurrence
from scheduling.types import (
    ClassSeriesData,
    NewOccurrence,
    OccurrenceData,
    OccurrenceStatus,
    SeriesStatus,
    Vacation,
)


logger = logging.getLogger(__name__)


def as_uuid(value: Any) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def series_from_row(row: ClassSeries) -> ClassSeriesData:
    return ClassSeriesData(
        id=row.id,
        start_date=row.start_date,
        end_date=row.end_date,
        start_time=row.start_time,
        end_time=row.end_time,
        days_of_week=tuple(row.days_of_week or ()),
        status=SeriesStatus(row.status),
        last_generated_through=row.last_generated_through,
        conflict_policy=row.conflict_policy,
        teacher_id=row.teacher_id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        class_type_id=row.class_type_id,
        booth_id=row.booth_id,
        branch_id=row.branch_id,
        duration=row.duration,
        notes=row.notes,
    )


def occurrence_from_row(row: ClassSession) -> OccurrenceData:
    return OccurrenceData(
        id=row.id,
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        status=OccurrenceStatus(row.status),
        is_cancelled=bool(row.is_cancelled),
        series_id=row.series_id,
        teacher_id=row.teacher_id,
        student_id=row.student_id,
        booth_id=row.booth_id,
        subject_id=row.subject_id,
        class_type_id=row.class_type_id,
        branch_id=row.branch_id,
    )


class SqlSchedulingRepository:
    """SQLAlchemy-backed persistence for the scheduling engine.

    Writes are flushed, never committed: the caller owns the transaction.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # Series

    def find_series(
        self,
        *,
        status: SeriesStatus | None = None,
        branch_id=None,
        series_id=None,
        limit: int | None = None,
    ) -> list[ClassSeriesData]:
        q = select(ClassSeries)
        if status is not None:
            q = q.where(ClassSeries.status == SeriesStatus(status).value)
        if branch_id is not None:
            q = q.where(ClassSeries.branch_id == as_uuid(branch_id))
        if series_id is not None:
            q = q.where(ClassSeries.id == as_uuid(series_id))
        q = q.order_by(ClassSeries.created_at.asc(), ClassSeries.id.asc())
        if limit is not None:
            q = q.limit(int(limit))
        return [series_from_row(r) for r in self.db.execute(q).scalars().all()]

    def get_series(self, series_id) -> ClassSeriesData | None:
        key = as_uuid(series_id)
        if key is None:
            return None
        row = self.db.get(ClassSeries, key)
        return series_from_row(row) if row is not None else None

    def update_series_watermark(self, series_id, through: date, *, status: SeriesStatus | None = None) -> None:
        key = as_uuid(series_id)
        # Conditional so a slower concurrent run can never pull the watermark back.
        self.db.execute(
            update(ClassSeries)
            .where(ClassSeries.id == key)
            .where(or_(ClassSeries.last_generated_through.is_(None), ClassSeries.last_generated_through < through))
            .values(last_generated_through=through)
        )
        if status is not None:
            self.update_series_status(key, status)
        self.db.flush()

    def update_series_status(self, series_id, status: SeriesStatus) -> None:
        self.db.execute(
            update(ClassSeries).where(ClassSeries.id == as_uuid(series_id)).values(status=SeriesStatus(status).value)
        )
        self.db.flush()

    # Occurrences

    def find_occurrences(
        self,
        *,
        series_id=None,
        dates: Sequence[date] | None = None,
        teacher_id=None,
        student_id=None,
        booth_id=None,
        include_cancelled: bool = False,
    ) -> list[OccurrenceData]:
        q = select(ClassSession)
        if series_id is not None:
            q = q.where(ClassSession.series_id == as_uuid(series_id))
        if dates is not None:
            dates = list(dates)
            if not dates:
                return []
            q = q.where(ClassSession.date.in_(dates))
        resource_filters = []
        if teacher_id is not None:
            resource_filters.append(ClassSession.teacher_id == as_uuid(teacher_id))
        if student_id is not None:
            resource_filters.append(ClassSession.student_id == as_uuid(student_id))
        if booth_id is not None:
            resource_filters.append(ClassSession.booth_id == as_uuid(booth_id))
        if resource_filters:
            q = q.where(or_(*resource_filters))
        if not include_cancelled:
            q = q.where(ClassSession.is_cancelled.is_(False))
        q = q.order_by(ClassSession.date.asc(), ClassSession.start_time.asc(), ClassSession.id.asc())
        return [occurrence_from_row(r) for r in self.db.execute(q).scalars().all()]

    def get_occurrence(self, class_id) -> OccurrenceData | None:
        key = as_uuid(class_id)
        if key is None:
            return None
        row = self.db.get(ClassSession, key)
        return occurrence_from_row(row) if row is not None else None

    def create_occurrence(self, data: NewOccurrence) -> OccurrenceData:
        row = ClassSession(
            series_id=as_uuid(data.series_id),
            branch_id=as_uuid(data.branch_id),
            teacher_id=as_uuid(data.teacher_id),
            student_id=as_uuid(data.student_id),
            subject_id=as_uuid(data.subject_id),
            class_type_id=as_uuid(data.class_type_id),
            booth_id=as_uuid(data.booth_id),
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            duration=data.duration,
            notes=data.notes,
            status=OccurrenceStatus(data.status).value,
            is_cancelled=data.is_cancelled,
            cancellation_reason=data.cancellation_reason,
        )
        try:
            # Savepoint: a unique violation must not poison the caller's transaction.
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError as exc:
            if data.series_id is not None and self._series_date_taken(data.series_id, data.date):
                raise DuplicateOccurrence(data.series_id, data.date) from exc
            raise
        return occurrence_from_row(row)

    def _series_date_taken(self, series_id, on_date: date) -> bool:
        q = (
            select(ClassSession.id)
            .where(ClassSession.series_id == as_uuid(series_id))
            .where(ClassSession.date == on_date)
            .limit(1)
        )
        return self.db.execute(q).first() is not None

    def update_occurrence_status(self, class_id, status: OccurrenceStatus) -> None:
        self.db.execute(
            update(ClassSession)
            .where(ClassSession.id == as_uuid(class_id))
            .values(status=OccurrenceStatus(status).value)
        )
        self.db.flush()

    def update_series_occurrences(self, series_id, from_date: date, changes: Mapping[str, Any]) -> list[OccurrenceData]:
        q = (
            select(ClassSession)
            .where(ClassSession.series_id == as_uuid(series_id))
            .where(ClassSession.date >= from_date)
            .order_by(ClassSession.date.asc())
        )
        rows = list(self.db.execute(q).scalars().all())
        for row in rows:
            for name, value in changes.items():
                setattr(row, name, as_uuid(value) if name.endswith("_id") else value)
        self.db.flush()
        return [occurrence_from_row(r) for r in rows]

    def _rows_by_ids(self, class_ids: Iterable) -> list[ClassSession]:
        keys = [k for k in (as_uuid(i) for i in class_ids) if k is not None]
        if not keys:
            return []
        return list(self.db.execute(select(ClassSession).where(ClassSession.id.in_(keys))).scalars().all())

    def cancel_occurrences(
        self,
        class_ids: Iterable,
        *,
        reason: str | None,
        actor: str | None,
        at: datetime,
    ) -> list[OccurrenceData]:
        cancelled: list[OccurrenceData] = []
        for row in self._rows_by_ids(class_ids):
            if row.is_cancelled:
                continue
            cancelled.append(occurrence_from_row(row))
            row.is_cancelled = True
            row.cancellation_reason = reason
            row.cancelled_by = actor
            row.cancelled_at = at
        self.db.flush()
        return cancelled

    def reactivate_occurrences(self, class_ids: Iterable) -> list[OccurrenceData]:
        rows = [r for r in self._rows_by_ids(class_ids) if r.is_cancelled]
        for row in rows:
            row.is_cancelled = False
            row.cancellation_reason = None
            row.cancelled_by = None
            row.cancelled_at = None
        self.db.flush()
        return [occurrence_from_row(r) for r in rows]

    # Branch data

    def get_branch_vacations(self, branch_id) -> list[Vacation]:
        q = select(VacationRow).where(
            or_(VacationRow.branch_id == as_uuid(branch_id), VacationRow.branch_id.is_(None))
        )
        return [
            Vacation(start_date=r.start_date, end_date=r.end_date, is_recurring=bool(r.is_recurring), name=r.name)
            for r in self.db.execute(q).scalars().all()
        ]
