from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, ContextManager

from scheduling.advance import AdvanceGenerationEngine
from scheduling.ports import SchedulingRepository
from scheduling.types import AdvanceResult, SeriesStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    """Explicit knobs for one cron tick; built by the caller, never read from the environment here."""

    lead_days_override: int | None = None
    max_duration_seconds: float | None = 270.0
    default_limit: int | None = None


@dataclass
class OrchestratorSummary:
    processed: int = 0
    up_to_date: int = 0
    created_confirmed: int = 0
    created_conflicted: int = 0
    skipped: int = 0
    failed: int = 0
    errors: int = 0
    special: int = 0
    ended: int = 0
    budget_exhausted: bool = False
    remaining: int = 0
    duration_ms: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def add(self, result: AdvanceResult) -> None:
        self.processed += 1
        self.up_to_date += int(result.up_to_date)
        self.created_confirmed += result.created_confirmed
        self.created_conflicted += result.created_conflicted
        self.skipped += result.skipped
        self.failed += result.failed
        self.special += int(result.special)
        self.ended += int(result.ended)
        self.details.append(result.to_dict())

    def add_error(self, series_id, exc: Exception) -> None:
        self.processed += 1
        self.errors += 1
        self.details.append({"seriesId": str(series_id), "error": str(exc) or exc.__class__.__name__})

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "upToDate": self.up_to_date,
            "created": {"confirmed": self.created_confirmed, "conflicted": self.created_conflicted},
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
            "special": self.special,
            "ended": self.ended,
            "budgetExhausted": self.budget_exhausted,
            "remaining": self.remaining,
            "durationMs": self.duration_ms,
            "details": self.details,
        }


class AdvanceOrchestrator:
    """Runs the engine over every ACTIVE series matching the filters.

    A failing series is logged and reported in `details`; the batch carries on.
    When the wall-clock budget runs out the remaining series are left for the
    next tick, which picks them up through the per-date idempotence guard.
    `unit_of_work` wraps each series so its writes commit or roll back together.
    """

    def __init__(
        self,
        repository: SchedulingRepository,
        engine: AdvanceGenerationEngine,
        *,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        unit_of_work: Callable[[], ContextManager] | None = None,
    ) -> None:
        self._repo = repository
        self._engine = engine
        self._config = config or OrchestratorConfig()
        self._clock = clock
        self._unit_of_work = unit_of_work or nullcontext

    def run(
        self,
        today: date,
        *,
        lead_days: int | None = None,
        limit: int | None = None,
        branch_id=None,
        series_id=None,
    ) -> OrchestratorSummary:
        started = self._clock()
        summary = OrchestratorSummary()
        effective_lead = lead_days if lead_days is not None else self._config.lead_days_override
        budget = self._config.max_duration_seconds

        series_list = self._repo.find_series(
            status=SeriesStatus.ACTIVE,
            branch_id=branch_id,
            series_id=series_id,
            limit=limit if limit is not None else self._config.default_limit,
        )
        logger.info("Advance tick for %s: %d active series", today, len(series_list))

        for index, series in enumerate(series_list):
            if budget is not None and self._clock() - started >= budget:
                summary.budget_exhausted = True
                summary.remaining = len(series_list) - index
                logger.warning(
                    "Advance tick budget of %.0fs exhausted; %d series left for the next run",
                    budget,
                    summary.remaining,
                )
                break
            try:
                with self._unit_of_work():
                    result = self._engine.advance(series, today=today, lead_days=effective_lead)
            except Exception as exc:
                logger.exception("Advance failed for series %s", series.id)
                summary.add_error(series.id, exc)
                continue
            summary.add(result)

        summary.duration_ms = int((self._clock() - started) * 1000)
        logger.info(
            "Advance tick done: processed=%d upToDate=%d confirmed=%d conflicted=%d errors=%d in %dms",
            summary.processed,
            summary.up_to_date,
            summary.created_confirmed,
            summary.created_conflicted,
            summary.errors,
            summary.duration_ms,
        )
        return summary
