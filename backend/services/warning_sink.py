from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.scheduling_warning import SchedulingWarning


logger = logging.getLogger(__name__)


class LoggingWarningSink:
    def record_warning(self, context: str, warnings: Sequence[str]) -> None:
        for message in warnings:
            logger.warning("Scheduling policy warning [%s]: %s", context, message)


class SqlWarningSink(LoggingWarningSink):
    """Logs each warning and stores it in `scheduling_warnings`.

    A message already stored for the same context is not stored again, so
    repeated runs over one misconfigured policy keep a single row.
    Best effort: a failed insert is logged and rolled back to its savepoint,
    never raised into generation.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def record_warning(self, context: str, warnings: Sequence[str]) -> None:
        if not warnings:
            return
        super().record_warning(context, warnings)
        try:
            with self.db.begin_nested():
                known = set(
                    self.db.execute(
                        select(SchedulingWarning.message)
                        .where(SchedulingWarning.context == context)
                        .where(SchedulingWarning.message.in_(list(warnings)))
                    ).scalars()
                )
                for message in dict.fromkeys(warnings):
                    if message not in known:
                        self.db.add(SchedulingWarning(context=context, message=message))
                self.db.flush()
        except SQLAlchemyError:
            logger.warning("Could not persist scheduling warnings for %s", context, exc_info=True)
