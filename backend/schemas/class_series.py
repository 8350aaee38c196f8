from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ClassSeriesBase(CamelModel):
    branch_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    student_id: uuid.UUID | None = None
    subject_id: uuid.UUID | None = None
    class_type_id: uuid.UUID | None = None
    booth_id: uuid.UUID | None = None
    duration: int | None = Field(default=None, gt=0)
    notes: str | None = None


class ClassSeriesCreate(ClassSeriesBase):
    start_date: date
    end_date: date | None = None
    # Times and weekdays are checked by the scheduling validators, not here,
    # so malformed values come back as VALIDATION_ERROR.
    start_time: str
    end_time: str
    days_of_week: list[Any]
    conflict_policy: dict[str, Any] | None = None


class ClassSeriesUpdate(ClassSeriesBase):
    start_date: date | None = None
    end_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    days_of_week: list[Any] | None = None
    status: Literal["ACTIVE", "PAUSED", "ENDED"] | None = None
    conflict_policy: dict[str, Any] | None = None
    save_as_branch_default: bool = False


class ClassSeriesOut(ClassSeriesBase):
    id: uuid.UUID
    start_date: date
    end_date: date | None = None
    start_time: time
    end_time: time
    days_of_week: list[int]
    status: str
    last_generated_through: date | None = None
    conflict_policy: dict[str, Any] | None = None
    created_at: datetime | None = None
