from __future__ import annotations

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, Date, DateTime, Integer, String, Text, Time, Uuid
from sqlalchemy.sql import func

from models.base import Base


class ClassSeries(Base):
    __tablename__ = "class_series"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    teacher_id = Column(Uuid(as_uuid=True), nullable=True)
    student_id = Column(Uuid(as_uuid=True), nullable=True)
    subject_id = Column(Uuid(as_uuid=True), nullable=True)
    class_type_id = Column(Uuid(as_uuid=True), nullable=True)
    booth_id = Column(Uuid(as_uuid=True), nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=True)
    # Weekday integers, 0 = Sunday.
    days_of_week = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default="ACTIVE")
    last_generated_through = Column(Date, nullable=True)
    conflict_policy = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status in ('ACTIVE', 'PAUSED', 'ENDED')", name="ck_class_series_status"),
        CheckConstraint("end_date is null or end_date >= start_date", name="ck_class_series_date_range"),
        CheckConstraint("duration is null or duration > 0", name="ck_class_series_duration"),
    )
