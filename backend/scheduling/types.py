from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from scheduling.timeutil import format_hm, to_minutes


class ConflictType(str, Enum):
    TEACHER_CONFLICT = "TEACHER_CONFLICT"
    STUDENT_CONFLICT = "STUDENT_CONFLICT"
    BOOTH_CONFLICT = "BOOTH_CONFLICT"
    TEACHER_UNAVAILABLE = "TEACHER_UNAVAILABLE"
    STUDENT_UNAVAILABLE = "STUDENT_UNAVAILABLE"
    TEACHER_WRONG_TIME = "TEACHER_WRONG_TIME"
    STUDENT_WRONG_TIME = "STUDENT_WRONG_TIME"
    NO_SHARED_AVAILABILITY = "NO_SHARED_AVAILABILITY"


HARD_CONFLICT_TYPES = frozenset(
    {
        ConflictType.TEACHER_CONFLICT,
        ConflictType.STUDENT_CONFLICT,
        ConflictType.BOOTH_CONFLICT,
    }
)

AVAILABILITY_CONFLICT_TYPES = frozenset(
    {
        ConflictType.TEACHER_UNAVAILABLE,
        ConflictType.STUDENT_UNAVAILABLE,
        ConflictType.TEACHER_WRONG_TIME,
        ConflictType.STUDENT_WRONG_TIME,
        ConflictType.NO_SHARED_AVAILABILITY,
    }
)


class OccurrenceStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CONFLICTED = "CONFLICTED"


class SeriesStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


@dataclass(frozen=True)
class ConflictReason:
    type: ConflictType
    resource_id: Any | None = None
    other_class_id: Any | None = None

    @property
    def is_hard(self) -> bool:
        return self.type in HARD_CONFLICT_TYPES

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.resource_id is not None:
            out["resourceId"] = str(self.resource_id)
        if self.other_class_id is not None:
            out["otherClassId"] = str(self.other_class_id)
        return out


@dataclass(frozen=True, order=True)
class TimeSlot:
    """A free interval within one day, in minutes since midnight."""

    start: int
    end: int

    @classmethod
    def from_times(cls, start: time | datetime | str, end: time | datetime | str) -> "TimeSlot":
        return cls(to_minutes(start), to_minutes(end))

    def covers(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"startTime": format_hm(self.start), "endTime": format_hm(min(self.end, 24 * 60 - 1))}


@dataclass(frozen=True)
class SessionContext:
    """The placement of one occurrence: what the classifier looks at."""

    date: date
    start_time: time
    end_time: time
    class_id: Any | None = None
    teacher_id: Any | None = None
    student_id: Any | None = None
    booth_id: Any | None = None
    branch_id: Any | None = None

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)


@dataclass(frozen=True)
class OccurrenceData:
    id: Any
    date: date
    start_time: time
    end_time: time
    status: OccurrenceStatus = OccurrenceStatus.CONFIRMED
    is_cancelled: bool = False
    series_id: Any | None = None
    teacher_id: Any | None = None
    student_id: Any | None = None
    booth_id: Any | None = None
    subject_id: Any | None = None
    class_type_id: Any | None = None
    branch_id: Any | None = None

    def context(self) -> SessionContext:
        return SessionContext(
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            class_id=self.id,
            teacher_id=self.teacher_id,
            student_id=self.student_id,
            booth_id=self.booth_id,
            branch_id=self.branch_id,
        )


@dataclass(frozen=True)
class NewOccurrence:
    date: date
    start_time: time
    end_time: time
    status: OccurrenceStatus
    series_id: Any | None = None
    teacher_id: Any | None = None
    student_id: Any | None = None
    booth_id: Any | None = None
    subject_id: Any | None = None
    class_type_id: Any | None = None
    branch_id: Any | None = None
    duration: int | None = None
    notes: str | None = None
    is_cancelled: bool = False
    cancellation_reason: str | None = None


@dataclass(frozen=True)
class ClassSeriesData:
    id: Any
    start_date: date
    start_time: time
    end_time: time
    days_of_week: tuple[int, ...]
    status: SeriesStatus = SeriesStatus.ACTIVE
    end_date: date | None = None
    last_generated_through: date | None = None
    conflict_policy: dict[str, Any] | None = None
    teacher_id: Any | None = None
    student_id: Any | None = None
    subject_id: Any | None = None
    class_type_id: Any | None = None
    booth_id: Any | None = None
    branch_id: Any | None = None
    duration: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Vacation:
    start_date: date
    end_date: date
    is_recurring: bool = False
    name: str | None = None


@dataclass(frozen=True)
class ClassTypeNode:
    id: Any
    name: str
    parent_id: Any | None = None


@dataclass
class AdvanceResult:
    series_id: Any
    from_date: date | None = None
    to_date: date | None = None
    attempted: int = 0
    created_confirmed: int = 0
    created_conflicted: int = 0
    skipped: int = 0
    failed: int = 0
    up_to_date: bool = False
    special: bool = False
    ended: bool = False
    last_generated_through: date | None = None
    skipped_dates: list[dict[str, str]] = field(default_factory=list)
    failed_dates: list[date] = field(default_factory=list)

    @property
    def created(self) -> int:
        return self.created_confirmed + self.created_conflicted

    def to_dict(self) -> dict[str, Any]:
        return {
            "seriesId": str(self.series_id),
            "fromDate": self.from_date.isoformat() if self.from_date else None,
            "toDate": self.to_date.isoformat() if self.to_date else None,
            "attempted": self.attempted,
            "createdConfirmed": self.created_confirmed,
            "createdConflicted": self.created_conflicted,
            "skipped": self.skipped,
            "failed": self.failed,
            "upToDate": self.up_to_date,
            "special": self.special,
            "ended": self.ended,
            "lastGeneratedThrough": (
                self.last_generated_through.isoformat() if self.last_generated_through else None
            ),
            "skippedDates": list(self.skipped_dates),
            "failedDates": [d.isoformat() for d in self.failed_dates],
        }
