from __future__ import annotations

import logging

import psycopg2
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from sqlalchemy import text
from sqlalchemy.exc import OperationalError as SAOperationalError

from api.router import api_router
from core.bootstrap import ensure_schema
from core.config import settings
from core.database import ENGINE, DatabaseUnavailableError, is_transient_db_connectivity_error
from core.logging import setup_logging
from scheduling.errors import OccurrenceNotFound, SchedulingValidationError, SeriesNotActive, SeriesNotFound


logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message, **extra})


def _db_error(exc: Exception) -> JSONResponse:
    if is_transient_db_connectivity_error(exc):
        logger.warning("Database transient connectivity error (503)", exc_info=exc)
        return _error(503, "DATABASE_UNAVAILABLE", "Database temporarily unavailable. Please retry.")
    logger.error("Database operation failed", exc_info=exc)
    return _error(500, "DATABASE_ERROR", "Database operation failed.")


def create_app() -> FastAPI:
    setup_logging(environment=settings.environment)
    is_production = settings.is_production
    app = FastAPI(
        title="Class Scheduling API",
        version="0.1.0",
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )

    if settings.auto_create_schema:
        ensure_schema(ENGINE)

    @app.exception_handler(SchedulingValidationError)
    def _validation_error(_request, exc: SchedulingValidationError):
        return _error(400, "VALIDATION_ERROR", str(exc), reason=exc.code)

    @app.exception_handler(SeriesNotActive)
    def _series_not_active(_request, exc: SeriesNotActive):
        return _error(400, "SERIES_NOT_ACTIVE", str(exc), status=exc.status)

    @app.exception_handler(SeriesNotFound)
    def _series_not_found(_request, exc: SeriesNotFound):
        return _error(404, "SERIES_NOT_FOUND", str(exc))

    @app.exception_handler(OccurrenceNotFound)
    def _occurrence_not_found(_request, exc: OccurrenceNotFound):
        return _error(404, "CLASS_SESSION_NOT_FOUND", str(exc))

    @app.exception_handler(DatabaseUnavailableError)
    def _db_unavailable(_request, exc: DatabaseUnavailableError):
        logger.warning("Database unavailable (503)", exc_info=exc)
        return _error(503, "DATABASE_UNAVAILABLE", "Database temporarily unavailable. Please retry.")

    @app.exception_handler(SAOperationalError)
    def _sqlalchemy_operational_error(_request, exc: SAOperationalError):
        return _db_error(exc)

    @app.exception_handler(psycopg2.OperationalError)
    def _psycopg2_operational_error(_request, exc: Exception):
        return _db_error(exc)

    allow_origins = [settings.frontend_origin]
    allow_origin_regex = None
    if not is_production:
        # Dev-friendly: allow the configured origin and any localhost port.
        allow_origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        # Always respond; reflect DB availability without crashing.
        db_status = "ok"
        try:
            with ENGINE.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            db_status = "down"

        return {"app": "ok", "database": db_status}

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
