from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from api.branch import get_scoped
from api.deps import get_caller_scope
from core.database import get_db
from models.class_series import ClassSeries
from models.class_session import ClassSession
from scheduling.confirmation import FORBIDDEN, NOT_FOUND, CallerScope, ConfirmationResult
from scheduling.conflicts import has_hard_conflict
from schemas.class_session import (
    BulkChangeOut,
    CancelRequest,
    ClassIdsRequest,
    ConfirmationOut,
    ConflictReasonOut,
    ConflictsOut,
)
from services.repository import SqlSchedulingRepository
from services.scheduling_factory import build_confirmation_gate, build_status_service


router = APIRouter()


def _accessible_ids(db: Session, class_ids: list[str], scope: CallerScope, result: ConfirmationResult) -> list:
    repo = SqlSchedulingRepository(db)
    allowed = []
    for class_id in class_ids:
        occurrence = repo.get_occurrence(class_id)
        if occurrence is None:
            result.fail(class_id, NOT_FOUND)
        elif not scope.can_act_on(occurrence.branch_id):
            result.fail(class_id, FORBIDDEN)
        else:
            allowed.append(occurrence.id)
    return allowed


@router.post("/confirm", response_model=ConfirmationOut)
def confirm_sessions(
    payload: ClassIdsRequest,
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> ConfirmationOut:
    result = build_confirmation_gate(db).confirm(payload.class_ids, scope)
    db.commit()
    return result.to_dict()


@router.post("/cancel", response_model=BulkChangeOut)
def cancel_sessions(
    payload: CancelRequest,
    scope: CallerScope = Depends(get_caller_scope),
    actor: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> BulkChangeOut:
    result = ConfirmationResult()
    allowed = _accessible_ids(db, payload.class_ids, scope, result)
    series_id = None
    if payload.series_id is not None:
        series_id = get_scoped(db, ClassSeries, payload.series_id, scope, not_found="SERIES_NOT_FOUND").id

    cancelled = build_status_service(db).cancel(
        allowed,
        series_id=series_id,
        from_date=payload.from_date,
        reason=payload.reason,
        actor=actor,
    )
    db.commit()
    return {"changed": [str(o.id) for o in cancelled], "failed": result.failed}


@router.post("/reactivate", response_model=BulkChangeOut)
def reactivate_sessions(
    payload: ClassIdsRequest,
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> BulkChangeOut:
    result = ConfirmationResult()
    allowed = _accessible_ids(db, payload.class_ids, scope, result)
    reactivated = build_status_service(db).reactivate(allowed)
    db.commit()
    return {"changed": [str(o.id) for o in reactivated], "failed": result.failed}


@router.get("/{class_id}/conflicts", response_model=ConflictsOut)
def get_session_conflicts(
    class_id: str,
    include_availability: bool = Query(default=True, alias="includeAvailability"),
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> ConflictsOut:
    row = get_scoped(
        db, ClassSession, class_id, scope, not_found="CLASS_SESSION_NOT_FOUND", allow_unbranched=True
    )
    reasons = build_status_service(db).describe_conflicts(row.id, include_availability)
    return ConflictsOut(
        class_id=str(row.id),
        status=row.status,
        is_cancelled=bool(row.is_cancelled),
        has_hard_conflict=has_hard_conflict(reasons),
        reasons=[ConflictReasonOut.model_validate(r.to_dict()) for r in reasons],
    )
