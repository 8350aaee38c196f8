from __future__ import annotations

import uuid
from datetime import date

from pydantic import Field

from schemas.class_series import CamelModel


class ClassIdsRequest(CamelModel):
    class_ids: list[str] = Field(min_length=1)


class CancelRequest(CamelModel):
    class_ids: list[str] = Field(default_factory=list)
    series_id: uuid.UUID | None = None
    from_date: date | None = None
    reason: str | None = None


class FailedItem(CamelModel):
    class_id: str
    code: str
    reason: str


class ConfirmationOut(CamelModel):
    updated: list[str]
    failed: list[FailedItem]


class BulkChangeOut(CamelModel):
    changed: list[str]
    failed: list[FailedItem] = Field(default_factory=list)


class ConflictReasonOut(CamelModel):
    type: str
    resource_id: str | None = None
    other_class_id: str | None = None


class ConflictsOut(CamelModel):
    class_id: str
    status: str
    is_cancelled: bool
    has_hard_conflict: bool
    reasons: list[ConflictReasonOut]
