from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.scheduling_config import BranchSchedulingConfig, SchedulingConfig
from scheduling.policy import SchedulingPolicyLayer
from services.repository import as_uuid


logger = logging.getLogger(__name__)


class SqlPolicyStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _global_row(self) -> SchedulingConfig | None:
        q = select(SchedulingConfig).order_by(SchedulingConfig.updated_at.asc()).limit(1)
        return self.db.execute(q).scalars().first()

    def _branch_row(self, branch_id) -> BranchSchedulingConfig | None:
        q = select(BranchSchedulingConfig).where(BranchSchedulingConfig.branch_id == as_uuid(branch_id))
        return self.db.execute(q).scalars().first()

    def get_global_config(self) -> SchedulingPolicyLayer | None:
        row = self._global_row()
        return SchedulingPolicyLayer.from_attributes(row) if row is not None else None

    def get_branch_config(self, branch_id) -> SchedulingPolicyLayer | None:
        if branch_id is None:
            return None
        row = self._branch_row(branch_id)
        return SchedulingPolicyLayer.from_attributes(row) if row is not None else None

    def upsert_branch_config(self, branch_id, patch: SchedulingPolicyLayer) -> None:
        row = self._branch_row(branch_id)
        if row is None:
            row = BranchSchedulingConfig(branch_id=as_uuid(branch_id))
            self.db.add(row)
        for name, value in patch.set_values().items():
            setattr(row, name, value)
        self.db.flush()

    def update_global_config(self, patch: SchedulingPolicyLayer) -> None:
        row = self._global_row()
        if row is None:
            row = SchedulingConfig()
            self.db.add(row)
        for name, value in patch.set_values().items():
            setattr(row, name, value)
        self.db.flush()
        logger.info("Updated global scheduling policy fields=%s", sorted(patch.set_values()))
