from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable

from scheduling.conflicts import availability_snapshot, classify, filter_by_availability_preference
from scheduling.errors import OccurrenceNotFound
from scheduling.policy import EffectiveSchedulingConfig, SchedulingPolicyResolver, decide_status
from scheduling.ports import AvailabilityLookup, SchedulingRepository
from scheduling.timeutil import overlaps
from scheduling.types import ConflictReason, OccurrenceData, OccurrenceStatus, SessionContext


logger = logging.getLogger(__name__)


# Series fields that a series edit carries over to its upcoming sessions.
SERIES_PROPAGATED_FIELDS = (
    "teacher_id",
    "student_id",
    "subject_id",
    "class_type_id",
    "booth_id",
    "start_time",
    "end_time",
    "duration",
    "notes",
)


class OccurrenceStatusService:
    """Keeps stored occurrence statuses in line with the current neighbors.

    Generation classifies an occurrence once; cancelling, reactivating or
    editing a session afterwards can add or remove conflicts on the sessions
    around it, which is what this service recomputes.
    """

    def __init__(
        self,
        repository: SchedulingRepository,
        policy: SchedulingPolicyResolver,
        *,
        availability: AvailabilityLookup | None = None,
    ) -> None:
        self._repo = repository
        self._policy = policy
        self._availability = availability

    def _load(self, occurrence_or_id) -> OccurrenceData:
        if isinstance(occurrence_or_id, OccurrenceData):
            return occurrence_or_id
        occurrence = self._repo.get_occurrence(occurrence_or_id)
        if occurrence is None:
            raise OccurrenceNotFound(occurrence_or_id)
        return occurrence

    def _config_for(self, occurrence: OccurrenceData) -> EffectiveSchedulingConfig:
        override = None
        if occurrence.series_id is not None:
            series = self._repo.get_series(occurrence.series_id)
            if series is not None:
                override = series.conflict_policy
        return self._policy.resolve(occurrence.branch_id, override, context=f"class:{occurrence.id}")

    def _neighbors(self, ctx: SessionContext) -> list[OccurrenceData]:
        if ctx.teacher_id is None and ctx.student_id is None and ctx.booth_id is None:
            return []
        return self._repo.find_occurrences(
            dates=[ctx.date],
            teacher_id=ctx.teacher_id,
            student_id=ctx.student_id,
            booth_id=ctx.booth_id,
        )

    def _classify(self, occurrence: OccurrenceData, cfg: EffectiveSchedulingConfig) -> list[ConflictReason]:
        ctx = occurrence.context()
        snapshot = availability_snapshot(self._availability, ctx) if self._availability is not None else None
        return classify(
            ctx,
            self._neighbors(ctx),
            snapshot,
            allow_outside_teacher=cfg.allow_outside_availability_teacher,
            allow_outside_student=cfg.allow_outside_availability_student,
        )

    def describe_conflicts(self, class_id, include_availability: bool = True) -> list[ConflictReason]:
        occurrence = self._load(class_id)
        if occurrence.is_cancelled:
            return []
        reasons = self._classify(occurrence, self._config_for(occurrence))
        return filter_by_availability_preference(reasons, include_availability)

    def recompute_status(self, occurrence_or_id) -> OccurrenceStatus | None:
        """Re-classify one occurrence and persist its status if it changed.

        Cancelled occurrences keep whatever status they had; returns None for them.
        """

        occurrence = self._load(occurrence_or_id)
        if occurrence.is_cancelled:
            return None
        cfg = self._config_for(occurrence)
        status = decide_status(self._classify(occurrence, cfg), cfg)
        if status != occurrence.status:
            self._repo.update_occurrence_status(occurrence.id, status)
            logger.info("Class session %s: %s -> %s", occurrence.id, occurrence.status.value, status.value)
        return status

    def recompute_neighbors(self, contexts: Iterable[SessionContext]) -> int:
        """Recompute every live occurrence overlapping one of `contexts` on a shared resource."""

        own_ids = set()
        targets: dict[str, OccurrenceData] = {}
        contexts = list(contexts)
        for ctx in contexts:
            if ctx.class_id is not None:
                own_ids.add(str(ctx.class_id))
        for ctx in contexts:
            start, end = ctx.start_minutes, ctx.end_minutes
            for other in self._neighbors(ctx):
                key = str(other.id)
                if key in own_ids or other.is_cancelled:
                    continue
                other_ctx = other.context()
                if overlaps(start, end, other_ctx.start_minutes, other_ctx.end_minutes):
                    targets[key] = other

        changed = 0
        for occurrence in targets.values():
            before = occurrence.status
            after = self.recompute_status(occurrence)
            if after is not None and after != before:
                changed += 1
        return changed

    def cancel(
        self,
        class_ids: Iterable | None = None,
        *,
        series_id=None,
        from_date: date | None = None,
        reason: str | None = None,
        actor: str | None = None,
        at: datetime | None = None,
    ) -> list[OccurrenceData]:
        """Cancel the given sessions, or every live session of a series from `from_date` on."""

        ids: list[Any] = list(class_ids or [])
        if series_id is not None:
            for o in self._repo.find_occurrences(series_id=series_id):
                if from_date is None or o.date >= from_date:
                    ids.append(o.id)
        if not ids:
            return []

        cancelled = self._repo.cancel_occurrences(
            ids,
            reason=reason,
            actor=actor,
            at=at or datetime.now(timezone.utc),
        )
        if cancelled:
            logger.info("Cancelled %d class sessions (reason=%s, actor=%s)", len(cancelled), reason, actor)
            self.recompute_neighbors(o.context() for o in cancelled)
        return cancelled

    def reactivate(self, class_ids: Iterable) -> list[OccurrenceData]:
        reactivated = self._repo.reactivate_occurrences(list(class_ids))
        for occurrence in reactivated:
            self.recompute_status(occurrence.id)
        if reactivated:
            logger.info("Reactivated %d class sessions", len(reactivated))
            self.recompute_neighbors(o.context() for o in reactivated)
        return reactivated

    def apply_series_edit(self, series_id, changes: dict[str, Any], *, from_date: date) -> list[OccurrenceData]:
        """Copy edited series fields onto its sessions dated `from_date` or later.

        The touched sessions are re-classified, and so is every session they
        overlapped before or overlap now.
        """

        changes = {k: v for k, v in changes.items() if k in SERIES_PROPAGATED_FIELDS}
        if not changes:
            return []
        before = [o for o in self._repo.find_occurrences(series_id=series_id) if o.date >= from_date]
        updated = self._repo.update_series_occurrences(series_id, from_date, changes)
        if not updated:
            return []
        logger.info("Series %s: %s applied to %d sessions from %s", series_id, sorted(changes), len(updated), from_date)
        for occurrence in updated:
            self.recompute_status(occurrence)
        contexts = [o.context() for o in before]
        contexts.extend(o.context() for o in updated if not o.is_cancelled)
        self.recompute_neighbors(contexts)
        return updated
