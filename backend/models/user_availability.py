from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Index, Integer, String, Text, Time, Uuid
from sqlalchemy.sql import func

from models.base import Base


class UserAvailability(Base):
    """One declared availability row.

    REGULAR rows repeat every `day_of_week` (0 = Sunday); EXCEPTION rows apply
    to one `date` and replace that weekday's REGULAR rows; ABSENCE rows carve
    time out of a date.
    """

    __tablename__ = "user_availability"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    type = Column(String(20), nullable=False, default="REGULAR")
    status = Column(String(20), nullable=False, default="APPROVED")

    day_of_week = Column(Integer, nullable=True)
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    full_day = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("type in ('REGULAR', 'EXCEPTION', 'ABSENCE')", name="ck_user_availability_type"),
        CheckConstraint("status in ('APPROVED', 'PENDING', 'REJECTED')", name="ck_user_availability_status"),
        CheckConstraint(
            "day_of_week is null or (day_of_week >= 0 and day_of_week <= 6)",
            name="ck_user_availability_day",
        ),
        Index("ix_user_availability_user_day", "user_id", "day_of_week"),
        Index("ix_user_availability_user_date", "user_id", "date"),
    )
