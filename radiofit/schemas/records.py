"""Domain types for exercise records and timezone handling."""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

ExerciseType = Literal["first", "second"]


class ExerciseRecord(BaseModel):
    """One completed exercise.

    ``timestamp`` is the UTC instant in epoch milliseconds. The three
    timezone fields are absent on legacy records. ``timezone_offset`` is
    local wall-clock minus UTC in minutes (Asia/Tokyo is +540) and
    ``local_timestamp`` is ``timestamp + timezone_offset * 60_000``, a
    wall-clock value only meant for display arithmetic.
    """

    model_config = ConfigDict(populate_by_name=True)

    date: str
    type: ExerciseType
    timestamp: int
    timezone: str | None = None
    timezone_offset: int | None = Field(
        default=None,
        validation_alias=AliasChoices("timezone_offset", "timezoneOffset"),
    )
    local_timestamp: int | None = Field(
        default=None,
        validation_alias=AliasChoices("local_timestamp", "localTimestamp"),
    )

    def to_storage(self) -> dict[str, Any]:
        """Serialize for the date-keyed store, omitting absent fields."""
        return self.model_dump(exclude_none=True, warnings=False)

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> "ExerciseRecord":
        """Load a stored record.

        Rows that fail validation (e.g. a corrupt legacy timestamp) are kept
        unvalidated so that migration can report and skip them instead of
        losing them.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Loading unvalidated record for {data.get('date')}: {e.error_count()} error(s)")
            values = dict(data)
            if "timezoneOffset" in values:
                values.setdefault("timezone_offset", values.pop("timezoneOffset"))
            if "localTimestamp" in values:
                values.setdefault("local_timestamp", values.pop("localTimestamp"))
            return cls.model_construct(**values)


@dataclass(frozen=True)
class TimezoneInfo:
    """Snapshot of a timezone at one instant."""
    timezone: str
    offset: int  # minutes, local - UTC
    local_time: datetime
    utc_time: datetime


class TimezoneErrorKind(str, enum.Enum):
    DETECTION_FAILED = "detection_failed"
    INVALID_TIMEZONE = "invalid_timezone"
    CONVERSION_ERROR = "conversion_error"


@dataclass(frozen=True)
class TimezoneErrorEntry:
    type: TimezoneErrorKind
    message: str
    fallback_action: str
    timestamp: str  # ISO-8601 UTC


@dataclass
class CalendarDate:
    """Records sharing one local date, ready for a calendar widget."""
    date: datetime  # naive local noon
    records: list[ExerciseRecord] = field(default_factory=list)
    local_date_string: str = ""


class RecordStats(BaseModel):
    total_records: int
    current_streak: int
    longest_streak: int
    first_record_date: str | None = None
    last_record_date: str | None = None


class RecordFilter(BaseModel):
    start_date: str | None = None  # YYYY-MM-DD, inclusive
    end_date: str | None = None  # YYYY-MM-DD, inclusive
    type: Literal["first", "second", "both"] | None = None
    timezone: str | None = None
