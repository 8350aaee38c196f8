from __future__ import annotations


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling engine."""


class SchedulingValidationError(SchedulingError, ValueError):
    """Malformed input rejected before any persistence call."""

    code = "VALIDATION_ERROR"


class InvalidTimeFormat(SchedulingValidationError):
    code = "INVALID_TIME_FORMAT"


class InvalidTimeRange(SchedulingValidationError):
    code = "INVALID_TIME_RANGE"


class InvalidWeekdaySet(SchedulingValidationError):
    code = "INVALID_WEEKDAY_SET"


class InvalidPolicyShape(SchedulingValidationError):
    code = "INVALID_POLICY_SHAPE"


class SeriesNotFound(SchedulingError):
    def __init__(self, series_id) -> None:
        super().__init__(f"Class series {series_id} not found")
        self.series_id = series_id


class SeriesNotActive(SchedulingError):
    def __init__(self, series_id, status: str) -> None:
        super().__init__(f"Class series {series_id} is {status}; generation is paused or disabled")
        self.series_id = series_id
        self.status = status


class DuplicateOccurrence(SchedulingError):
    """An occurrence already exists for (series_id, date).

    Raised by repositories when the uniqueness guard fires, typically because a
    concurrent run for the same series created the row first.
    """

    def __init__(self, series_id, on_date) -> None:
        super().__init__(f"Occurrence already exists for series {series_id} on {on_date}")
        self.series_id = series_id
        self.on_date = on_date


class OccurrenceNotFound(SchedulingError):
    def __init__(self, class_id) -> None:
        super().__init__(f"Class session {class_id} not found")
        self.class_id = class_id
