from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field

from schemas.class_series import CamelModel


class AllowOutsideAvailability(BaseModel):
    teacher: bool | None = None
    student: bool | None = None


class PolicyPatch(CamelModel):
    # Keys are conflict type names (TEACHER_CONFLICT, ...); checked by the policy parser.
    mark_as_conflicted: dict[str, bool | None] | None = None
    allow_outside_availability: AllowOutsideAvailability | None = None
    generation_months: int | None = Field(default=None, ge=1)

    def to_policy_shape(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class EffectiveConfigOut(CamelModel):
    branch_id: uuid.UUID | None = None
    mark_as_conflicted: dict[str, bool]
    allow_outside_availability: dict[str, bool]
    generation_months: int
    lead_days: int
    warnings: list[str] = Field(default_factory=list)
