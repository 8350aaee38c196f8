from __future__ import annotations

from fastapi import APIRouter

from api.routes import class_series, class_sessions, cron, scheduling_config


api_router = APIRouter()
# Registered before the series router so "/advance/cron" is never read as a series id.
api_router.include_router(cron.router, prefix="/class-series/advance", tags=["cron"])
api_router.include_router(class_series.router, prefix="/class-series", tags=["class-series"])
api_router.include_router(class_sessions.router, prefix="/class-sessions", tags=["class-sessions"])
api_router.include_router(scheduling_config.router, prefix="/scheduling-config", tags=["scheduling-config"])
