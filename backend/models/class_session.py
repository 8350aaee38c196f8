from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func

from models.base import Base


class ClassSession(Base):
    __tablename__ = "class_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    series_id = Column(Uuid(as_uuid=True), ForeignKey("class_series.id", ondelete="SET NULL"), nullable=True)
    branch_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    teacher_id = Column(Uuid(as_uuid=True), nullable=True)
    student_id = Column(Uuid(as_uuid=True), nullable=True)
    subject_id = Column(Uuid(as_uuid=True), nullable=True)
    class_type_id = Column(Uuid(as_uuid=True), nullable=True)
    booth_id = Column(Uuid(as_uuid=True), nullable=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="CONFIRMED")
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status in ('CONFIRMED', 'CONFLICTED')", name="ck_class_sessions_status"),
        UniqueConstraint("series_id", "date", name="uq_class_sessions_series_date"),
        Index("ix_class_sessions_date_teacher", "date", "teacher_id"),
        Index("ix_class_sessions_date_student", "date", "student_id"),
        Index("ix_class_sessions_date_booth", "date", "booth_id"),
    )
