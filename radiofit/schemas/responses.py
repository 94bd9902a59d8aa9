"""Pydantic request/response models for API endpoints."""

from datetime import datetime
from pydantic import BaseModel, field_validator

from radiofit.schemas.records import ExerciseRecord, ExerciseType
from radiofit.services.reminders import parse_reminder_time


class RecordCreate(BaseModel):
    """Mark an exercise as done."""
    type: ExerciseType


class CalendarDayResponse(BaseModel):
    """All records for one local calendar date."""
    date: datetime
    local_date_string: str
    records: list[ExerciseRecord]


class TimezoneInfoResponse(BaseModel):
    timezone: str
    offset: int
    local_time: datetime
    utc_time: datetime


class TimezoneErrorResponse(BaseModel):
    type: str
    message: str
    fallback_action: str
    timestamp: str


class TimezoneErrorLogResponse(BaseModel):
    entries: list[TimezoneErrorResponse]
    total: int
    counts: dict[str, int]


class MigrationResponse(BaseModel):
    rewritten_dates: int


class ReminderRequest(BaseModel):
    time: str

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        parse_reminder_time(v)
        return v


class ReminderResponse(BaseModel):
    time: str | None
    timezone: str | None = None
    next_run_time: datetime | None
