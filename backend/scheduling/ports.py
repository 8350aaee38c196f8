from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, Sequence

from scheduling.types import (
    ClassSeriesData,
    ClassTypeNode,
    NewOccurrence,
    OccurrenceData,
    OccurrenceStatus,
    SeriesStatus,
    TimeSlot,
    Vacation,
)

if TYPE_CHECKING:
    from scheduling.policy import SchedulingPolicyLayer


class SchedulingRepository(Protocol):
    def find_series(
        self,
        *,
        status: SeriesStatus | None = None,
        branch_id: Any | None = None,
        series_id: Any | None = None,
        limit: int | None = None,
    ) -> list[ClassSeriesData]: ...

    def get_series(self, series_id) -> ClassSeriesData | None: ...

    def find_occurrences(
        self,
        *,
        series_id: Any | None = None,
        dates: Sequence[date] | None = None,
        teacher_id: Any | None = None,
        student_id: Any | None = None,
        booth_id: Any | None = None,
        include_cancelled: bool = False,
    ) -> list[OccurrenceData]:
        """Occurrences matching every given filter.

        The resource filters (teacher/student/booth) are OR-ed together: a row
        matches when it shares any of the given resources.
        """
        ...

    def get_occurrence(self, class_id) -> OccurrenceData | None: ...

    def create_occurrence(self, data: NewOccurrence) -> OccurrenceData:
        """Persist one occurrence; raises DuplicateOccurrence for a taken (series_id, date)."""
        ...

    def update_series_watermark(self, series_id, through: date, *, status: SeriesStatus | None = None) -> None: ...

    def update_series_status(self, series_id, status: SeriesStatus) -> None: ...

    def update_occurrence_status(self, class_id, status: OccurrenceStatus) -> None: ...

    def update_series_occurrences(self, series_id, from_date: date, changes: Mapping[str, Any]) -> list[OccurrenceData]:
        """Apply `changes` to every occurrence of the series dated `from_date` or later; return them updated."""
        ...

    def cancel_occurrences(
        self,
        class_ids: Iterable,
        *,
        reason: str | None,
        actor: str | None,
        at: datetime,
    ) -> list[OccurrenceData]:
        """Cancel the not-yet-cancelled rows among `class_ids`; return them as they were."""
        ...

    def reactivate_occurrences(self, class_ids: Iterable) -> list[OccurrenceData]: ...

    def get_branch_vacations(self, branch_id) -> list[Vacation]: ...


class AvailabilityLookup(Protocol):
    def get_availability(self, user_id, weekday: int, on_date: date | None = None) -> list[TimeSlot]:
        """Declared free slots for `weekday` (0 = Sunday).

        With `on_date`, date-specific exceptions replace the weekday rows and
        approved absences are cut out.
        """
        ...

    def get_absences(self, user_id, on_date: date) -> list[TimeSlot]: ...


class PolicyStore(Protocol):
    def get_global_config(self) -> "SchedulingPolicyLayer | None": ...

    def get_branch_config(self, branch_id) -> "SchedulingPolicyLayer | None": ...

    def upsert_branch_config(self, branch_id, patch: "SchedulingPolicyLayer") -> None: ...


class WarningSink(Protocol):
    def record_warning(self, context: str, warnings: Sequence[str]) -> None: ...


class ClassTypeLookup(Protocol):
    def get_class_type(self, class_type_id) -> ClassTypeNode | None: ...
