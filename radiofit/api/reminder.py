"""Daily reminder endpoints."""

from fastapi import APIRouter, Depends

from radiofit.core.container import Services, get_services
from radiofit.schemas.responses import ReminderRequest, ReminderResponse

router = APIRouter(prefix="/api/reminder", tags=["reminder"])


@router.get("", response_model=ReminderResponse)
async def get_reminder(services: Services = Depends(get_services)):
    saved = await services.reminders.current()
    return ReminderResponse(
        time=saved.time if saved else None,
        timezone=saved.timezone if saved else None,
        next_run_time=services.reminders.next_run_time(),
    )


@router.put("", response_model=ReminderResponse)
async def set_reminder(body: ReminderRequest, services: Services = Depends(get_services)):
    """Schedule the daily reminder, replacing any existing one."""
    next_run = await services.reminders.schedule(body.time)
    saved = await services.reminders.current()
    return ReminderResponse(
        time=body.time,
        timezone=saved.timezone if saved else None,
        next_run_time=next_run,
    )


@router.delete("", status_code=204)
async def cancel_reminder(services: Services = Depends(get_services)):
    await services.reminders.cancel()
