from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from scheduling.conflicts import find_hard_conflicts
from scheduling.ports import SchedulingRepository
from scheduling.types import OccurrenceData, OccurrenceStatus


logger = logging.getLogger(__name__)


NOT_FOUND = "NOT_FOUND"
FORBIDDEN = "FORBIDDEN"
HARD_CONFLICTS_REMAIN = "HARD_CONFLICTS_REMAIN"
UPDATE_FAILED = "UPDATE_FAILED"

REASON_TEXT = {
    NOT_FOUND: "class session not found",
    FORBIDDEN: "no access to this branch",
    HARD_CONFLICTS_REMAIN: "hard conflicts remain",
    UPDATE_FAILED: "update failed",
}


@dataclass(frozen=True)
class CallerScope:
    """Who is asking. `branch_id=None` with `is_admin=False` means an unscoped internal caller."""

    branch_id: Any | None = None
    is_admin: bool = False

    def can_access(self, branch_id) -> bool:
        if self.is_admin or self.branch_id is None:
            return True
        return branch_id is not None and str(branch_id) == str(self.branch_id)

    def can_act_on(self, branch_id) -> bool:
        """Session-level check: sessions without a branch are open to every caller."""
        return branch_id is None or self.can_access(branch_id)


@dataclass
class ConfirmationResult:
    updated: list[Any] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def fail(self, class_id, code: str) -> None:
        self.failed.append({"classId": str(class_id), "code": code, "reason": REASON_TEXT[code]})

    def to_dict(self) -> dict[str, Any]:
        return {"updated": [str(i) for i in self.updated], "failed": list(self.failed)}


def live_hard_conflicts(repository: SchedulingRepository, occurrence: OccurrenceData):
    if occurrence.teacher_id is None and occurrence.student_id is None and occurrence.booth_id is None:
        return []
    neighbors = repository.find_occurrences(
        dates=[occurrence.date],
        teacher_id=occurrence.teacher_id,
        student_id=occurrence.student_id,
        booth_id=occurrence.booth_id,
    )
    return find_hard_conflicts(occurrence.context(), neighbors)


class BatchConfirmationGate:
    """Bulk-confirm occurrences, refusing any that still double-book a resource.

    Availability mismatches are not re-checked: confirming is how staff
    override them. Each id is handled on its own and the batch never aborts.
    """

    def __init__(self, repository: SchedulingRepository) -> None:
        self._repo = repository

    def confirm(self, class_ids: Iterable, scope: CallerScope | None = None) -> ConfirmationResult:
        scope = scope or CallerScope()
        result = ConfirmationResult()
        seen: set[str] = set()

        for class_id in class_ids:
            key = str(class_id)
            if key in seen:
                continue
            seen.add(key)

            try:
                self._confirm_one(class_id, scope, result)
            except Exception:
                logger.exception("Failed to confirm class session %s", class_id)
                result.fail(class_id, UPDATE_FAILED)

        logger.info("Confirmation batch: updated=%d failed=%d", len(result.updated), len(result.failed))
        return result

    def _confirm_one(self, class_id, scope: CallerScope, result: ConfirmationResult) -> None:
        occurrence = self._repo.get_occurrence(class_id)
        if occurrence is None:
            result.fail(class_id, NOT_FOUND)
            return
        if not scope.can_act_on(occurrence.branch_id):
            result.fail(class_id, FORBIDDEN)
            return

        conflicts = live_hard_conflicts(self._repo, occurrence)
        if conflicts:
            logger.info("Refusing to confirm %s: %s", class_id, [c.type.value for c in conflicts])
            result.fail(class_id, HARD_CONFLICTS_REMAIN)
            return

        if occurrence.status != OccurrenceStatus.CONFIRMED:
            self._repo.update_occurrence_status(occurrence.id, OccurrenceStatus.CONFIRMED)
        result.updated.append(occurrence.id)
