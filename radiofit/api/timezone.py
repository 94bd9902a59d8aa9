"""Timezone info and error log endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends

from radiofit.core.container import Services, get_services
from radiofit.schemas.records import TimezoneErrorKind
from radiofit.schemas.responses import TimezoneErrorLogResponse, TimezoneErrorResponse, TimezoneInfoResponse

router = APIRouter(prefix="/api/timezone", tags=["timezone"])


@router.get("", response_model=TimezoneInfoResponse)
async def get_timezone(services: Services = Depends(get_services)):
    """Detected timezone right now."""
    info = services.resolver.current_info()
    return TimezoneInfoResponse(
        timezone=info.timezone,
        offset=info.offset,
        local_time=info.local_time,
        utc_time=info.utc_time,
    )


@router.get("/errors", response_model=TimezoneErrorLogResponse)
async def get_errors(
    type: Optional[TimezoneErrorKind] = None,
    services: Services = Depends(get_services),
):
    """Recent timezone failures, oldest first."""
    reporter = services.reporter
    entries = [e for e in reporter.error_log() if type is None or e.type == type]
    return TimezoneErrorLogResponse(
        entries=[
            TimezoneErrorResponse(
                type=e.type.value,
                message=e.message,
                fallback_action=e.fallback_action,
                timestamp=e.timestamp,
            )
            for e in entries
        ],
        total=reporter.count_by_kind(),
        counts={kind.value: reporter.count_by_kind(kind) for kind in TimezoneErrorKind},
    )


@router.delete("/errors", status_code=204)
async def clear_errors(services: Services = Depends(get_services)):
    services.reporter.clear_log()
