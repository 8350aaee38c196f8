from __future__ import annotations

import hmac
from datetime import date, datetime, timezone

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.branch import parse_branch_id
from core.config import settings
from scheduling.confirmation import CallerScope


bearer_scheme = HTTPBearer(auto_error=False)


def get_caller_scope(
    x_branch_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CallerScope:
    """Caller scope as forwarded by the authenticating gateway."""

    is_admin = (x_user_role or "").strip().upper() == "ADMIN"
    branch_id = None
    if x_branch_id:
        branch_id = parse_branch_id(x_branch_id)
    return CallerScope(branch_id=branch_id, is_admin=is_admin)


def require_admin(scope: CallerScope = Depends(get_caller_scope)) -> CallerScope:
    if not scope.is_admin:
        raise HTTPException(status_code=403, detail="NOT_AUTHORIZED")
    return scope


def require_cron_access(creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> None:
    secret = settings.cron_secret
    if secret is None:
        if settings.is_production:
            raise HTTPException(status_code=401, detail="CRON_SECRET_NOT_CONFIGURED")
        return
    token = creds.credentials if creds is not None else ""
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise HTTPException(status_code=401, detail="INVALID_CRON_SECRET")


def get_today() -> date:
    return datetime.now(timezone.utc).date()
