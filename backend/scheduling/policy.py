from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping

from scheduling.errors import InvalidPolicyShape
from scheduling.ports import PolicyStore, WarningSink
from scheduling.types import HARD_CONFLICT_TYPES, ConflictReason, ConflictType, OccurrenceStatus


logger = logging.getLogger(__name__)


DEFAULT_GENERATION_MONTHS = 1
MAX_RECOMMENDED_GENERATION_MONTHS = 12
DAYS_PER_GENERATION_MONTH = 30

# Conflict type -> config field controlling whether it marks an occurrence CONFLICTED.
MARK_FIELDS: dict[ConflictType, str] = {
    ConflictType.TEACHER_CONFLICT: "mark_teacher_conflict",
    ConflictType.STUDENT_CONFLICT: "mark_student_conflict",
    ConflictType.BOOTH_CONFLICT: "mark_booth_conflict",
    ConflictType.TEACHER_UNAVAILABLE: "mark_teacher_unavailable",
    ConflictType.STUDENT_UNAVAILABLE: "mark_student_unavailable",
    ConflictType.TEACHER_WRONG_TIME: "mark_teacher_wrong_time",
    ConflictType.STUDENT_WRONG_TIME: "mark_student_wrong_time",
    ConflictType.NO_SHARED_AVAILABILITY: "mark_no_shared_availability",
}

ALLOW_OUTSIDE_FIELDS = {
    "teacher": "allow_outside_availability_teacher",
    "student": "allow_outside_availability_student",
}


@dataclass(frozen=True)
class EffectiveSchedulingConfig:
    mark_teacher_conflict: bool = True
    mark_student_conflict: bool = True
    mark_booth_conflict: bool = True
    mark_teacher_unavailable: bool = False
    mark_student_unavailable: bool = False
    mark_teacher_wrong_time: bool = False
    mark_student_wrong_time: bool = False
    mark_no_shared_availability: bool = False
    allow_outside_availability_teacher: bool = False
    allow_outside_availability_student: bool = False
    generation_months: int = DEFAULT_GENERATION_MONTHS

    def marks(self, conflict_type: ConflictType) -> bool:
        return bool(getattr(self, MARK_FIELDS[ConflictType(conflict_type)]))

    @property
    def lead_days(self) -> int:
        return max(1, int(self.generation_months) * DAYS_PER_GENERATION_MONTH)

    @property
    def mark_as_conflicted(self) -> dict[str, bool]:
        return {t.value: self.marks(t) for t in MARK_FIELDS}

    def to_policy_shape(self) -> dict[str, Any]:
        return {
            "markAsConflicted": self.mark_as_conflicted,
            "allowOutsideAvailability": {
                "teacher": self.allow_outside_availability_teacher,
                "student": self.allow_outside_availability_student,
            },
            "generationMonths": self.generation_months,
        }


@dataclass(frozen=True)
class SchedulingPolicyLayer:
    """A partial config: `None` means inherit from the layer below."""

    mark_teacher_conflict: bool | None = None
    mark_student_conflict: bool | None = None
    mark_booth_conflict: bool | None = None
    mark_teacher_unavailable: bool | None = None
    mark_student_unavailable: bool | None = None
    mark_teacher_wrong_time: bool | None = None
    mark_student_wrong_time: bool | None = None
    mark_no_shared_availability: bool | None = None
    allow_outside_availability_teacher: bool | None = None
    allow_outside_availability_student: bool | None = None
    generation_months: int | None = None

    @classmethod
    def from_attributes(cls, obj: Any) -> "SchedulingPolicyLayer":
        """Read a layer off any object exposing the config field names (e.g. an ORM row)."""

        return cls(**{f.name: getattr(obj, f.name, None) for f in fields(cls)})

    @classmethod
    def from_policy_shape(cls, data: Mapping[str, Any] | None) -> "SchedulingPolicyLayer":
        """Parse the JSON shape stored on a series or sent by the UI.

        `{"markAsConflicted": {TYPE: bool}, "allowOutsideAvailability":
        {"teacher": bool, "student": bool}, "generationMonths": int}`; every key
        is optional.
        """

        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidPolicyShape("Conflict policy must be an object")

        unknown = set(data) - {"markAsConflicted", "allowOutsideAvailability", "generationMonths"}
        if unknown:
            raise InvalidPolicyShape(f"Unknown conflict policy keys: {sorted(unknown)}")

        values: dict[str, Any] = {}

        mark = data.get("markAsConflicted")
        if mark is not None:
            if not isinstance(mark, Mapping):
                raise InvalidPolicyShape("markAsConflicted must be an object")
            for key, flag in mark.items():
                try:
                    conflict_type = ConflictType(key)
                except ValueError as exc:
                    raise InvalidPolicyShape(f"Unknown conflict type {key!r}") from exc
                if flag is None:
                    continue
                if not isinstance(flag, bool):
                    raise InvalidPolicyShape(f"markAsConflicted.{key} must be a boolean")
                values[MARK_FIELDS[conflict_type]] = flag

        allow = data.get("allowOutsideAvailability")
        if allow is not None:
            if not isinstance(allow, Mapping):
                raise InvalidPolicyShape("allowOutsideAvailability must be an object")
            for key, flag in allow.items():
                if key not in ALLOW_OUTSIDE_FIELDS:
                    raise InvalidPolicyShape(f"Unknown allowOutsideAvailability key {key!r}")
                if flag is None:
                    continue
                if not isinstance(flag, bool):
                    raise InvalidPolicyShape(f"allowOutsideAvailability.{key} must be a boolean")
                values[ALLOW_OUTSIDE_FIELDS[key]] = flag

        months = data.get("generationMonths")
        if months is not None:
            if isinstance(months, bool) or not isinstance(months, int):
                raise InvalidPolicyShape("generationMonths must be an integer")
            values["generation_months"] = months

        return cls(**values)

    def set_values(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def is_empty(self) -> bool:
        return not self.set_values()


def merge(base: EffectiveSchedulingConfig, override: SchedulingPolicyLayer | None) -> EffectiveSchedulingConfig:
    """Apply one partial layer on top of a complete config, field by field."""

    if override is None:
        return base
    values: dict[str, Any] = {}
    for f in fields(EffectiveSchedulingConfig):
        value = getattr(override, f.name, None)
        values[f.name] = getattr(base, f.name) if value is None else value
    return EffectiveSchedulingConfig(**values)


def validate_config(cfg: EffectiveSchedulingConfig) -> list[str]:
    warnings: list[str] = []
    months = int(cfg.generation_months)
    if months < 1:
        warnings.append(f"generationMonths={months} is below 1; using 1")
    elif months > MAX_RECOMMENDED_GENERATION_MONTHS:
        warnings.append(
            f"generationMonths={months} exceeds the recommended maximum of {MAX_RECOMMENDED_GENERATION_MONTHS}"
        )
    if not any(cfg.marks(t) for t in HARD_CONFLICT_TYPES):
        warnings.append("All hard conflict flags are disabled; double bookings will never be marked CONFLICTED")
    return warnings


def decide_status(reasons: Iterable[ConflictReason], cfg: EffectiveSchedulingConfig) -> OccurrenceStatus:
    if any(cfg.marks(r.type) for r in reasons):
        return OccurrenceStatus.CONFLICTED
    return OccurrenceStatus.CONFIRMED


@dataclass(frozen=True)
class ResolvedPolicy:
    config: EffectiveSchedulingConfig
    warnings: tuple[str, ...] = ()


class SchedulingPolicyResolver:
    """Merge defaults <- global row <- branch row <- series override.

    Store rows are cached on the instance, so one resolver should live for one
    request or one cron tick.
    """

    def __init__(
        self,
        store: PolicyStore,
        *,
        warning_sink: WarningSink | None = None,
        defaults: EffectiveSchedulingConfig | None = None,
    ) -> None:
        self._store = store
        self._warning_sink = warning_sink
        self._defaults = defaults or EffectiveSchedulingConfig()
        self._global: SchedulingPolicyLayer | None = None
        self._global_loaded = False
        self._branches: dict[Any, SchedulingPolicyLayer | None] = {}

    def _global_layer(self) -> SchedulingPolicyLayer | None:
        if not self._global_loaded:
            self._global = self._store.get_global_config()
            self._global_loaded = True
        return self._global

    def _branch_layer(self, branch_id) -> SchedulingPolicyLayer | None:
        if branch_id is None:
            return None
        if branch_id not in self._branches:
            self._branches[branch_id] = self._store.get_branch_config(branch_id)
        return self._branches[branch_id]

    def resolve_with_warnings(
        self,
        branch_id=None,
        series_override: Mapping[str, Any] | SchedulingPolicyLayer | None = None,
        *,
        context: str | None = None,
    ) -> ResolvedPolicy:
        if isinstance(series_override, SchedulingPolicyLayer):
            series_layer = series_override
        else:
            series_layer = SchedulingPolicyLayer.from_policy_shape(series_override)

        cfg = self._defaults
        for layer in (self._global_layer(), self._branch_layer(branch_id), series_layer):
            cfg = merge(cfg, layer)

        warnings = validate_config(cfg)
        if cfg.generation_months < 1:
            cfg = merge(cfg, SchedulingPolicyLayer(generation_months=1))

        if warnings and self._warning_sink is not None:
            self._warning_sink.record_warning(context or f"branch:{branch_id}", warnings)
        return ResolvedPolicy(config=cfg, warnings=tuple(warnings))

    def resolve(
        self,
        branch_id=None,
        series_override: Mapping[str, Any] | SchedulingPolicyLayer | None = None,
        *,
        context: str | None = None,
    ) -> EffectiveSchedulingConfig:
        return self.resolve_with_warnings(branch_id, series_override, context=context).config

    def save_branch_default(self, branch_id, patch: Mapping[str, Any] | SchedulingPolicyLayer) -> bool:
        """Persist only the fields present in `patch` as the branch override.

        Returns False (and writes nothing) for an empty patch.
        """

        layer = patch if isinstance(patch, SchedulingPolicyLayer) else SchedulingPolicyLayer.from_policy_shape(patch)
        if layer.is_empty():
            return False
        self._store.upsert_branch_config(branch_id, layer)
        self._branches.pop(branch_id, None)
        logger.info("Saved branch scheduling policy branch_id=%s fields=%s", branch_id, sorted(layer.set_values()))
        return True
