from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.branch import parse_branch_id
from api.deps import get_caller_scope, require_admin
from core.database import get_db
from scheduling.confirmation import CallerScope
from scheduling.policy import ResolvedPolicy, SchedulingPolicyLayer, SchedulingPolicyResolver
from schemas.scheduling_config import EffectiveConfigOut, PolicyPatch
from services.policy_store import SqlPolicyStore
from services.scheduling_factory import build_policy_resolver


router = APIRouter()


def _out(branch_id, resolved: ResolvedPolicy) -> dict:
    cfg = resolved.config
    return {
        "branchId": branch_id,
        **cfg.to_policy_shape(),
        "leadDays": cfg.lead_days,
        "warnings": list(resolved.warnings),
    }


def _check_branch(scope: CallerScope, branch_id) -> None:
    if not scope.can_access(branch_id):
        raise HTTPException(status_code=403, detail="BRANCH_FORBIDDEN")


@router.get("", response_model=EffectiveConfigOut)
def get_effective_config(
    branch_id: str | None = Query(default=None, alias="branchId"),
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> EffectiveConfigOut:
    key = parse_branch_id(branch_id) if branch_id else None
    if key is not None:
        _check_branch(scope, key)
    # Read-only: warnings are returned, not recorded.
    resolver = SchedulingPolicyResolver(SqlPolicyStore(db))
    return _out(key, resolver.resolve_with_warnings(key))


@router.put("", response_model=EffectiveConfigOut)
def update_global_config(
    payload: PolicyPatch,
    _admin: CallerScope = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EffectiveConfigOut:
    layer = SchedulingPolicyLayer.from_policy_shape(payload.to_policy_shape())
    if layer.is_empty():
        raise HTTPException(status_code=400, detail="EMPTY_PATCH")
    SqlPolicyStore(db).update_global_config(layer)
    resolved = build_policy_resolver(db).resolve_with_warnings(context="global")
    db.commit()
    return _out(None, resolved)


@router.patch("/branches/{branch_id}", response_model=EffectiveConfigOut)
def patch_branch_config(
    branch_id: str,
    payload: PolicyPatch,
    scope: CallerScope = Depends(get_caller_scope),
    db: Session = Depends(get_db),
) -> EffectiveConfigOut:
    key = parse_branch_id(branch_id)
    _check_branch(scope, key)
    resolver = build_policy_resolver(db)
    if not resolver.save_branch_default(key, payload.to_policy_shape()):
        raise HTTPException(status_code=400, detail="EMPTY_PATCH")
    resolved = resolver.resolve_with_warnings(key)
    db.commit()
    return _out(key, resolved)
