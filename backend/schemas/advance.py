from __future__ import annotations

from pydantic import Field, model_validator

from scheduling.policy import DAYS_PER_GENERATION_MONTH
from schemas.class_series import CamelModel


class AdvanceRequest(CamelModel):
    lead_days: int | None = Field(default=None, ge=1, le=400)
    months: int | None = Field(default=None, ge=1, le=12)

    @model_validator(mode="after")
    def _one_horizon(self) -> "AdvanceRequest":
        if self.lead_days is not None and self.months is not None:
            raise ValueError("Pass either leadDays or months, not both")
        return self

    def resolved_lead_days(self) -> int | None:
        if self.lead_days is not None:
            return self.lead_days
        if self.months is not None:
            return self.months * DAYS_PER_GENERATION_MONTH
        return None
