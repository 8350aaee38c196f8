from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

import models  # noqa: F401  (registers every table on Base.metadata)
from models.base import Base


logger = logging.getLogger(__name__)


def ensure_schema(engine: Engine) -> None:
    """Create any missing scheduling tables. Safe to run on every startup.

    Production databases are normally migrated with
    `migrations/001_create_scheduling_tables.py`; this is the dev/test path.
    """

    Base.metadata.create_all(bind=engine)
    logger.info("Scheduling schema ensured (%d tables)", len(Base.metadata.tables))
