from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.user_availability import UserAvailability
from scheduling.availability import FULL_DAY, effective_slots, merge_slots
from scheduling.timeutil import to_minutes
from scheduling.types import TimeSlot
from services.repository import as_uuid


def slot_from_row(row: UserAvailability) -> TimeSlot | None:
    if row.full_day or row.start_time is None or row.end_time is None:
        return FULL_DAY
    start, end = to_minutes(row.start_time), to_minutes(row.end_time)
    if end <= start:
        return None
    return TimeSlot(start, end)


class SqlAvailabilityLookup:
    """Effective availability from `user_availability`; only APPROVED rows count."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _rows(self, user_id, kind: str, *, weekday: int | None = None, on_date: date | None = None):
        q = (
            select(UserAvailability)
            .where(UserAvailability.user_id == as_uuid(user_id))
            .where(UserAvailability.type == kind)
            .where(UserAvailability.status == "APPROVED")
        )
        if weekday is not None:
            q = q.where(UserAvailability.day_of_week == weekday)
        if on_date is not None:
            q = q.where(UserAvailability.date == on_date)
        return self.db.execute(q).scalars().all()

    def _slots(self, rows) -> list[TimeSlot]:
        return [s for s in (slot_from_row(r) for r in rows) if s is not None]

    def get_availability(self, user_id, weekday: int, on_date: date | None = None) -> list[TimeSlot]:
        regular = self._slots(self._rows(user_id, "REGULAR", weekday=weekday))
        if on_date is None:
            return merge_slots(regular)
        exceptions = self._slots(self._rows(user_id, "EXCEPTION", on_date=on_date))
        return effective_slots(regular, exceptions, self.get_absences(user_id, on_date))

    def get_absences(self, user_id, on_date: date) -> list[TimeSlot]:
        return merge_slots(self._slots(self._rows(user_id, "ABSENCE", on_date=on_date)))
