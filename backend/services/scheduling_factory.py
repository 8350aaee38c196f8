from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from core.config import Settings, settings as default_settings
from scheduling.advance import AdvanceGenerationEngine
from scheduling.class_types import SpecialClassTypeResolver
from scheduling.confirmation import BatchConfirmationGate
from scheduling.orchestrator import AdvanceOrchestrator, OrchestratorConfig
from scheduling.policy import SchedulingPolicyResolver
from scheduling.status import OccurrenceStatusService
from services.availability_service import SqlAvailabilityLookup
from services.class_type_lookup import SqlClassTypeLookup
from services.policy_store import SqlPolicyStore
from services.repository import SqlSchedulingRepository
from services.warning_sink import SqlWarningSink


def build_policy_resolver(db: Session) -> SchedulingPolicyResolver:
    return SchedulingPolicyResolver(SqlPolicyStore(db), warning_sink=SqlWarningSink(db))


def build_engine(
    db: Session,
    *,
    policy: SchedulingPolicyResolver | None = None,
    settings: Settings | None = None,
) -> AdvanceGenerationEngine:
    cfg = settings or default_settings
    policy = policy or build_policy_resolver(db)
    return AdvanceGenerationEngine(
        SqlSchedulingRepository(db),
        policy,
        availability=SqlAvailabilityLookup(db),
        neighbor_status=build_status_service(db, policy=policy),
        special_class_types=SpecialClassTypeResolver(
            SqlClassTypeLookup(db),
            special_name=cfg.special_class_type_name,
            max_depth=cfg.class_type_max_depth,
        ),
    )


def build_status_service(db: Session, *, policy: SchedulingPolicyResolver | None = None) -> OccurrenceStatusService:
    return OccurrenceStatusService(
        SqlSchedulingRepository(db),
        policy or build_policy_resolver(db),
        availability=SqlAvailabilityLookup(db),
    )


def build_confirmation_gate(db: Session) -> BatchConfirmationGate:
    return BatchConfirmationGate(SqlSchedulingRepository(db))


def orchestrator_config(settings: Settings | None = None) -> OrchestratorConfig:
    cfg = settings or default_settings
    return OrchestratorConfig(
        lead_days_override=cfg.default_lead_days,
        max_duration_seconds=cfg.cron_max_duration_seconds,
    )


def build_orchestrator(db: Session, *, settings: Settings | None = None) -> AdvanceOrchestrator:
    @contextmanager
    def commit_per_series() -> Iterator[None]:
        try:
            yield
            db.commit()
        except Exception:
            db.rollback()
            raise

    return AdvanceOrchestrator(
        SqlSchedulingRepository(db),
        build_engine(db, settings=settings),
        config=orchestrator_config(settings),
        unit_of_work=commit_per_series,
    )
