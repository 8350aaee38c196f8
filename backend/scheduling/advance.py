from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterator

from scheduling.availability import overlaps_any
from scheduling.class_types import SpecialClassTypeResolver
from scheduling.conflicts import availability_snapshot, classify
from scheduling.errors import DuplicateOccurrence, SeriesNotActive, SeriesNotFound
from scheduling.policy import EffectiveSchedulingConfig, SchedulingPolicyResolver, decide_status
from scheduling.ports import AvailabilityLookup, SchedulingRepository
from scheduling.status import OccurrenceStatusService
from scheduling.timeutil import day_of_week, iter_dates, to_minutes, validate_days_of_week, validate_time_window
from scheduling.types import (
    AdvanceResult,
    ClassSeriesData,
    ConflictReason,
    NewOccurrence,
    OccurrenceData,
    OccurrenceStatus,
    SeriesStatus,
    SessionContext,
    TimeSlot,
)
from scheduling.vacations import is_vacation_date


logger = logging.getLogger(__name__)


SKIP_EXISTS = "EXISTS"
SKIP_VACATION = "VACATION"
SKIP_DUPLICATE = "DUPLICATE"

ABSENCE_CANCELLATION_REASON = "ABSENCE"


@dataclass(frozen=True)
class AdvanceWindow:
    """Inclusive date range a run may materialize."""

    start: date
    end: date


def compute_horizon_end(today: date, end_date: date | None, lead_days: int) -> date:
    horizon = today + timedelta(days=max(1, int(lead_days)))
    if end_date is not None and end_date < horizon:
        return end_date
    return horizon


def compute_advance_window(
    today: date,
    last_generated_through: date | None,
    start_date: date,
    end_date: date | None,
    lead_days: int,
) -> AdvanceWindow:
    # Past dates are never back-filled, and an edited startDate is respected
    # even when the watermark lags behind it.
    lower_bound = max(start_date, today)
    if last_generated_through is not None:
        start = max(last_generated_through + timedelta(days=1), lower_bound)
    else:
        start = lower_bound
    return AdvanceWindow(start=start, end=compute_horizon_end(today, end_date, lead_days))


def is_up_to_date(last_generated_through: date | None, horizon_end: date) -> bool:
    return last_generated_through is not None and last_generated_through >= horizon_end


def candidate_dates(window: AdvanceWindow, days_of_week) -> list[date]:
    days = set(days_of_week)
    return [d for d in iter_dates(window.start, window.end) if day_of_week(d) in days]


@dataclass
class PlannedOccurrence:
    """What a run would do for one candidate date."""

    date: date
    occurrence: NewOccurrence | None = None
    reasons: list[ConflictReason] = field(default_factory=list)
    skip_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"date": self.date.isoformat()}
        if self.skip_reason is not None:
            out["skipped"] = self.skip_reason
            return out
        assert self.occurrence is not None
        out["status"] = self.occurrence.status.value
        out["cancelled"] = self.occurrence.is_cancelled
        out["reasons"] = [r.to_dict() for r in self.reasons]
        return out


class AdvanceGenerationEngine:
    """Materializes occurrences of one series up to a rolling horizon.

    Safe to call repeatedly: dates that already have an occurrence are
    skipped, and the watermark (`last_generated_through`) only advances past
    dates that were created or judged unnecessary in this run. A date whose
    creation fails stays ahead of the watermark so the next run retries it.
    """

    def __init__(
        self,
        repository: SchedulingRepository,
        policy: SchedulingPolicyResolver,
        *,
        availability: AvailabilityLookup | None = None,
        special_class_types: SpecialClassTypeResolver | None = None,
        neighbor_status: OccurrenceStatusService | None = None,
    ) -> None:
        self._repo = repository
        self._policy = policy
        self._availability = availability
        self._special = special_class_types
        self._neighbor_status = neighbor_status

    def load_series(self, series_or_id) -> ClassSeriesData:
        if isinstance(series_or_id, ClassSeriesData):
            return series_or_id
        series = self._repo.get_series(series_or_id)
        if series is None:
            raise SeriesNotFound(series_or_id)
        return series

    def effective_config(self, series: ClassSeriesData) -> EffectiveSchedulingConfig:
        return self._policy.resolve(series.branch_id, series.conflict_policy, context=f"series:{series.id}")

    def window_for(
        self,
        series: ClassSeriesData,
        *,
        today: date,
        lead_days: int | None = None,
        config: EffectiveSchedulingConfig | None = None,
    ) -> AdvanceWindow:
        if lead_days is None:
            cfg = config or self.effective_config(series)
            lead_days = cfg.lead_days
        return compute_advance_window(
            today,
            series.last_generated_through,
            series.start_date,
            series.end_date,
            max(1, int(lead_days)),
        )

    def advance(
        self,
        series_or_id,
        *,
        today: date,
        lead_days: int | None = None,
        require_active: bool = False,
    ) -> AdvanceResult:
        series = self.load_series(series_or_id)
        if require_active and SeriesStatus(series.status) != SeriesStatus.ACTIVE:
            raise SeriesNotActive(series.id, SeriesStatus(series.status).value)

        days = validate_days_of_week(series.days_of_week)
        validate_time_window(series.start_time, series.end_time)

        result = AdvanceResult(series_id=series.id, last_generated_through=series.last_generated_through)

        if self._special is not None and self._special.is_special(series.class_type_id):
            logger.info("Series %s has a special class type; generation skipped", series.id)
            result.special = True
            return result

        cfg = self.effective_config(series)
        window = self.window_for(series, today=today, lead_days=lead_days, config=cfg)
        result.from_date = window.start
        result.to_date = window.end

        if series.end_date is not None and window.start > series.end_date:
            if SeriesStatus(series.status) != SeriesStatus.ENDED:
                self._repo.update_series_status(series.id, SeriesStatus.ENDED)
                logger.info("Series %s is past its end date %s; marked ENDED", series.id, series.end_date)
            result.ended = True
            result.up_to_date = True
            return result

        if is_up_to_date(series.last_generated_through, window.end):
            result.up_to_date = True
            return result

        dates = candidate_dates(window, days)
        result.attempted = len(dates)
        logger.info(
            "Advancing series %s from %s to %s (%d candidate dates)",
            series.id,
            window.start,
            window.end,
            len(dates),
        )

        for planned in self._plan(series, cfg, dates):
            if planned.skip_reason is not None:
                result.skipped += 1
                result.skipped_dates.append({"date": planned.date.isoformat(), "reason": planned.skip_reason})
                continue
            assert planned.occurrence is not None
            try:
                created = self._repo.create_occurrence(planned.occurrence)
            except DuplicateOccurrence:
                result.skipped += 1
                result.skipped_dates.append({"date": planned.date.isoformat(), "reason": SKIP_DUPLICATE})
                continue
            except Exception:
                logger.exception("Failed to create occurrence for series %s on %s", series.id, planned.date)
                result.failed += 1
                result.failed_dates.append(planned.date)
                continue

            if created.status == OccurrenceStatus.CONFLICTED:
                result.created_conflicted += 1
            else:
                result.created_confirmed += 1
            if not created.is_cancelled and any(r.is_hard for r in planned.reasons):
                self._remark_neighbors(created)

        self._advance_watermark(series, window, result)
        logger.info(
            "Series %s advanced: confirmed=%d conflicted=%d skipped=%d failed=%d through=%s",
            series.id,
            result.created_confirmed,
            result.created_conflicted,
            result.skipped,
            result.failed,
            result.last_generated_through,
        )
        return result

    def preview(self, series_or_id, *, today: date, lead_days: int | None = None) -> list[PlannedOccurrence]:
        """Dry run of `advance`: classify every candidate date, persist nothing."""

        series = self.load_series(series_or_id)
        days = validate_days_of_week(series.days_of_week)
        validate_time_window(series.start_time, series.end_time)
        if self._special is not None and self._special.is_special(series.class_type_id):
            return []
        cfg = self.effective_config(series)
        window = self.window_for(series, today=today, lead_days=lead_days, config=cfg)
        if series.end_date is not None and window.start > series.end_date:
            return []
        if is_up_to_date(series.last_generated_through, window.end):
            return []
        return list(self._plan(series, cfg, candidate_dates(window, days)))

    def _remark_neighbors(self, created: OccurrenceData) -> None:
        # The sessions a new occurrence double-books are conflicted by it too.
        if self._neighbor_status is None:
            return
        try:
            changed = self._neighbor_status.recompute_neighbors([created.context()])
        except Exception:
            logger.exception("Failed to recompute sessions overlapping %s on %s", created.id, created.date)
            return
        if changed:
            logger.info("Occurrence %s on %s re-marked %d overlapping sessions", created.id, created.date, changed)

    def _advance_watermark(self, series: ClassSeriesData, window: AdvanceWindow, result: AdvanceResult) -> None:
        if result.failed_dates:
            target = min(result.failed_dates) - timedelta(days=1)
        else:
            target = window.end

        current = series.last_generated_through
        if current is not None and target <= current:
            return

        ended = series.end_date is not None and target >= series.end_date
        self._repo.update_series_watermark(
            series.id,
            target,
            status=SeriesStatus.ENDED if ended else None,
        )
        result.last_generated_through = target
        result.ended = ended

    def _plan(
        self,
        series: ClassSeriesData,
        cfg: EffectiveSchedulingConfig,
        dates: list[date],
    ) -> Iterator[PlannedOccurrence]:
        if not dates:
            return

        existing_dates = {
            o.date for o in self._repo.find_occurrences(series_id=series.id, dates=dates, include_cancelled=True)
        }

        neighbors_by_date: dict[date, list[OccurrenceData]] = defaultdict(list)
        if series.teacher_id is not None or series.student_id is not None or series.booth_id is not None:
            for o in self._repo.find_occurrences(
                dates=dates,
                teacher_id=series.teacher_id,
                student_id=series.student_id,
                booth_id=series.booth_id,
            ):
                neighbors_by_date[o.date].append(o)

        vacations = self._repo.get_branch_vacations(series.branch_id) if series.branch_id is not None else []
        slots_cache: dict[tuple[Any, date], tuple[TimeSlot, ...]] = {}
        absence_cache: dict[tuple[Any, date], list[TimeSlot]] = {}

        for d in dates:
            if d in existing_dates:
                yield PlannedOccurrence(date=d, skip_reason=SKIP_EXISTS)
                continue
            if vacations and is_vacation_date(d, vacations):
                yield PlannedOccurrence(date=d, skip_reason=SKIP_VACATION)
                continue

            ctx = SessionContext(
                date=d,
                start_time=series.start_time,
                end_time=series.end_time,
                teacher_id=series.teacher_id,
                student_id=series.student_id,
                booth_id=series.booth_id,
                branch_id=series.branch_id,
            )
            snapshot = (
                availability_snapshot(self._availability, ctx, slots_cache)
                if self._availability is not None
                else None
            )
            reasons = classify(
                ctx,
                neighbors_by_date.get(d, []),
                snapshot,
                allow_outside_teacher=cfg.allow_outside_availability_teacher,
                allow_outside_student=cfg.allow_outside_availability_student,
            )
            status = decide_status(reasons, cfg)
            absent = self._has_absence(ctx, absence_cache)
            if reasons:
                logger.debug(
                    "Series %s on %s: %s -> %s",
                    series.id,
                    d,
                    [r.type.value for r in reasons],
                    status.value,
                )

            yield PlannedOccurrence(
                date=d,
                reasons=reasons,
                occurrence=NewOccurrence(
                    date=d,
                    start_time=series.start_time,
                    end_time=series.end_time,
                    status=status,
                    series_id=series.id,
                    teacher_id=series.teacher_id,
                    student_id=series.student_id,
                    booth_id=series.booth_id,
                    subject_id=series.subject_id,
                    class_type_id=series.class_type_id,
                    branch_id=series.branch_id,
                    duration=series.duration or (to_minutes(series.end_time) - to_minutes(series.start_time)),
                    notes=series.notes,
                    is_cancelled=absent,
                    cancellation_reason=ABSENCE_CANCELLATION_REASON if absent else None,
                ),
            )

    def _has_absence(self, ctx: SessionContext, cache: dict[tuple[Any, date], list[TimeSlot]]) -> bool:
        if self._availability is None:
            return False
        start, end = ctx.start_minutes, ctx.end_minutes
        for user_id in (ctx.teacher_id, ctx.student_id):
            if user_id is None:
                continue
            key = (user_id, ctx.date)
            if key not in cache:
                cache[key] = list(self._availability.get_absences(user_id, ctx.date))
            if overlaps_any(cache[key], start, end):
                return True
        return False
