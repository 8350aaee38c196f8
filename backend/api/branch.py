from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from scheduling.confirmation import CallerScope
from services.repository import as_uuid


def where_branch(stmt, model, scope: CallerScope):
    # Admins and unscoped internal callers see every branch.
    if scope.is_admin or scope.branch_id is None:
        return stmt
    return stmt.where(model.branch_id == scope.branch_id)


def get_scoped(db: Session, model, obj_id, scope: CallerScope, *, not_found: str, allow_unbranched: bool = False):
    """Fetch one row by id or raise 404; a row from another branch raises 403.

    With `allow_unbranched`, rows that have no branch are open to every caller.
    """

    key = as_uuid(obj_id)
    row = db.execute(select(model).where(model.id == key)).scalars().first() if key is not None else None
    if row is None:
        raise HTTPException(status_code=404, detail=not_found)
    allowed = scope.can_act_on(row.branch_id) if allow_unbranched else scope.can_access(row.branch_id)
    if not allowed:
        raise HTTPException(status_code=403, detail="BRANCH_FORBIDDEN")
    return row


def parse_branch_id(value: str):
    key = as_uuid(value.strip())
    if key is None:
        raise HTTPException(status_code=400, detail="INVALID_BRANCH_ID")
    return key
