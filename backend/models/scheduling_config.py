from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SchedulingPolicyColumns:
    """Nullable policy columns; NULL inherits from the layer below."""

    mark_teacher_conflict = Column(Boolean, nullable=True)
    mark_student_conflict = Column(Boolean, nullable=True)
    mark_booth_conflict = Column(Boolean, nullable=True)
    mark_teacher_unavailable = Column(Boolean, nullable=True)
    mark_student_unavailable = Column(Boolean, nullable=True)
    mark_teacher_wrong_time = Column(Boolean, nullable=True)
    mark_student_wrong_time = Column(Boolean, nullable=True)
    mark_no_shared_availability = Column(Boolean, nullable=True)
    allow_outside_availability_teacher = Column(Boolean, nullable=True)
    allow_outside_availability_student = Column(Boolean, nullable=True)
    generation_months = Column(Integer, nullable=True)


class SchedulingConfig(SchedulingPolicyColumns, Base):
    __tablename__ = "scheduling_configs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class BranchSchedulingConfig(SchedulingPolicyColumns, Base):
    __tablename__ = "branch_scheduling_configs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "generation_months is null or generation_months >= 1",
            name="ck_branch_scheduling_configs_generation_months",
        ),
    )
