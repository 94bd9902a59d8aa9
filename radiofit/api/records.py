"""Exercise record API endpoints."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from radiofit.core.container import Services, get_services
from radiofit.core.exceptions import RecordWriteError, TimezoneDetectionError
from radiofit.schemas.records import ExerciseRecord, RecordFilter, RecordStats
from radiofit.schemas.responses import CalendarDayResponse, MigrationResponse, RecordCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["records"])


@router.post("", response_model=ExerciseRecord, status_code=201)
async def create_record(body: RecordCreate, services: Services = Depends(get_services)):
    """Record a completed exercise at the current instant."""
    try:
        return await services.records.record(body.type)
    except TimezoneDetectionError as e:
        logger.error(f"Cannot record exercise without a timezone: {e}")
        raise HTTPException(status_code=503, detail="Timezone could not be detected; record not saved")
    except RecordWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("", response_model=list[ExerciseRecord])
async def list_records(
    timezone: Optional[str] = Query(None, description="Display timezone (default: detected)"),
    start_date: Optional[str] = Query(None, description="First local date (inclusive)"),
    end_date: Optional[str] = Query(None, description="Last local date (inclusive)"),
    type: Optional[Literal["first", "second", "both"]] = None,
    services: Services = Depends(get_services),
):
    """All records converted to the display timezone, optionally filtered."""
    records = await services.records.records_converted_to(timezone)
    record_filter = RecordFilter(start_date=start_date, end_date=end_date, type=type, timezone=timezone)
    return services.calendar.filter_records(records, record_filter)


@router.get("/stats", response_model=RecordStats)
async def get_stats(
    timezone: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """Totals and streaks."""
    records = await services.records.records_converted_to(timezone)
    return services.calendar.record_stats(records, timezone)


@router.get("/calendar", response_model=list[CalendarDayResponse])
async def get_calendar(
    timezone: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """Records grouped by local date for the calendar view."""
    display_timezone = timezone or services.resolver.current_info().timezone
    records = await services.records.records_converted_to(display_timezone)
    days = services.calendar.convert_for_calendar(records, display_timezone)
    return [
        CalendarDayResponse(date=day.date, local_date_string=day.local_date_string, records=day.records)
        for day in sorted(days, key=lambda d: d.local_date_string)
    ]


@router.post("/migrate", response_model=MigrationResponse)
async def migrate_records(services: Services = Depends(get_services)):
    """Upgrade any legacy records in storage."""
    rewritten = await services.migration.migrate_all_stored()
    return MigrationResponse(rewritten_dates=rewritten)


@router.get("/{date}", response_model=list[ExerciseRecord])
async def get_records_for_date(date: str, services: Services = Depends(get_services)):
    """Records stored under one date key."""
    return await services.records.records_for_date(date)
