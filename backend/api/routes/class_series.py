from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from api.branch import get_scoped, parse_branch_id, where_branch
from api.deps import get_caller_scope, get_today
from core.database import get_db
from models.class_series import ClassSeries
from scheduling.confirmation import CallerScope
from scheduling.policy import SchedulingPolicyLayer
from scheduling.status import SERIES_PROPAGATED_FIELDS
from scheduling.timeutil import to_minutes, validate_days_of_week, validate_time_window
from schemas.advance import AdvanceRequest
from schemas.class_series import ClassSeriesCreate, ClassSeriesOut, ClassSeriesUpdate
from services.scheduling_factory import build_engine, build_policy_resolver, build_status_service


logger = logging.getLogger(__name__)

router = APIRouter()


def _check_date_range(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise HTTPException(status_code=400, detail="END_DATE_BEFORE_START_DATE")


@router.get("", response_model=list[ClassSeriesOut])
def list_series(
    status: str | None = Query(default=None),
    branch_id: str | None = Query(default=None, alias="branchId"),
    limit: int = Query(default=200, ge=1, le=1000),
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> list[ClassSeriesOut]:
    q = where_branch(select(ClassSeries), ClassSeries, scope)
    if status:
        q = q.where(ClassSeries.status == status.strip().upper())
    if branch_id:
        q = q.where(ClassSeries.branch_id == parse_branch_id(branch_id))
    q = q.order_by(ClassSeries.start_date.asc(), ClassSeries.id.asc()).limit(limit)
    return db.execute(q).scalars().all()


@router.post("", response_model=ClassSeriesOut, status_code=201)
def create_series(
    payload: ClassSeriesCreate,
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> ClassSeriesOut:
    start_time, end_time = validate_time_window(payload.start_time, payload.end_time)
    days = validate_days_of_week(payload.days_of_week)
    # Parsed only to reject a malformed policy before anything is stored.
    SchedulingPolicyLayer.from_policy_shape(payload.conflict_policy)
    _check_date_range(payload.start_date, payload.end_date)

    branch_id = payload.branch_id
    if branch_id is None and not scope.is_admin:
        branch_id = scope.branch_id
    if not scope.can_access(branch_id):
        raise HTTPException(status_code=403, detail="BRANCH_FORBIDDEN")

    data = payload.model_dump(exclude={"start_time", "end_time", "days_of_week", "branch_id"})
    series = ClassSeries(
        **data,
        branch_id=branch_id,
        start_time=start_time,
        end_time=end_time,
        days_of_week=list(days),
        status="ACTIVE",
    )
    db.add(series)
    db.commit()
    db.refresh(series)
    logger.info("Created class series %s (days=%s)", series.id, list(days))
    return series


@router.get("/{series_id}", response_model=ClassSeriesOut)
def get_series(
    series_id: str,
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> ClassSeriesOut:
    return get_scoped(db, ClassSeries, series_id, scope, not_found="SERIES_NOT_FOUND")


@router.patch("/{series_id}", response_model=ClassSeriesOut)
def update_series(
    series_id: str,
    payload: ClassSeriesUpdate,
    skip_propagation: bool = Query(default=False, alias="skipPropagation"),
    scope: CallerScope = Depends(get_caller_scope),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
) -> ClassSeriesOut:
    series = get_scoped(db, ClassSeries, series_id, scope, not_found="SERIES_NOT_FOUND")
    data = payload.model_dump(exclude_unset=True)
    save_as_branch_default = bool(data.pop("save_as_branch_default", False))
    propagated = {k: data[k] for k in SERIES_PROPAGATED_FIELDS if k in data}

    if "start_time" in data or "end_time" in data:
        start_time, end_time = validate_time_window(
            data.pop("start_time", None) or series.start_time,
            data.pop("end_time", None) or series.end_time,
        )
        series.start_time = start_time
        series.end_time = end_time
        propagated.update(start_time=start_time, end_time=end_time)
        if "duration" not in data:
            series.duration = to_minutes(end_time) - to_minutes(start_time)
            propagated["duration"] = series.duration
    if "days_of_week" in data:
        series.days_of_week = list(validate_days_of_week(data.pop("days_of_week")))
    if "conflict_policy" in data:
        SchedulingPolicyLayer.from_policy_shape(data["conflict_policy"])
    if "branch_id" in data and not scope.can_access(data["branch_id"]):
        raise HTTPException(status_code=403, detail="BRANCH_FORBIDDEN")

    for k, v in data.items():
        setattr(series, k, v)
    _check_date_range(series.start_date, series.end_date)

    # A shortened end date pulls the watermark back with it.
    if (
        series.end_date is not None
        and series.last_generated_through is not None
        and series.last_generated_through > series.end_date
    ):
        logger.info("Series %s: watermark %s clamped to end date", series.id, series.last_generated_through)
        series.last_generated_through = series.end_date

    if save_as_branch_default:
        if series.branch_id is None:
            raise HTTPException(status_code=400, detail="BRANCH_REQUIRED")
        if not series.conflict_policy:
            raise HTTPException(status_code=400, detail="CONFLICT_POLICY_REQUIRED")
        build_policy_resolver(db).save_branch_default(series.branch_id, series.conflict_policy)

    db.flush()
    if propagated and not skip_propagation:
        build_status_service(db).apply_series_edit(series.id, propagated, from_date=today)

    db.commit()
    db.refresh(series)
    return series


@router.post("/{series_id}/advance")
def advance_series(
    series_id: str,
    payload: AdvanceRequest | None = Body(default=None),
    scope: CallerScope = Depends(get_caller_scope),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
) -> dict:
    series = get_scoped(db, ClassSeries, series_id, scope, not_found="SERIES_NOT_FOUND")
    lead_days = payload.resolved_lead_days() if payload is not None else None

    result = build_engine(db).advance(series.id, today=today, lead_days=lead_days, require_active=True)
    db.commit()
    return result.to_dict()


@router.get("/{series_id}/preview")
def preview_series(
    series_id: str,
    lead_days: int | None = Query(default=None, alias="leadDays", ge=1, le=400),
    scope: CallerScope = Depends(get_caller_scope),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
) -> dict:
    series = get_scoped(db, ClassSeries, series_id, scope, not_found="SERIES_NOT_FOUND")
    planned = build_engine(db).preview(series.id, today=today, lead_days=lead_days)
    return {"seriesId": str(series.id), "dates": [p.to_dict() for p in planned]}
