from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.branch import parse_branch_id
from api.deps import get_today, require_cron_access
from core.database import get_db
from services.repository import as_uuid
from services.scheduling_factory import build_orchestrator


router = APIRouter()


@router.get("/cron", dependencies=[Depends(require_cron_access)])
def run_advance_cron(
    lead_days: int | None = Query(default=None, alias="leadDays", ge=1, le=400),
    limit: int | None = Query(default=None, ge=1, le=10000),
    branch_id: str | None = Query(default=None, alias="branchId"),
    series_id: str | None = Query(default=None, alias="seriesId"),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
) -> dict:
    series_key = None
    if series_id:
        series_key = as_uuid(series_id.strip())
        if series_key is None:
            raise HTTPException(status_code=400, detail="INVALID_SERIES_ID")

    summary = build_orchestrator(db).run(
        today,
        lead_days=lead_days,
        limit=limit,
        branch_id=parse_branch_id(branch_id) if branch_id else None,
        series_id=series_key,
    )
    return summary.to_dict()
