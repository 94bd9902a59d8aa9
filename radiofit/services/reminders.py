"""Daily exercise reminder on APScheduler, persisted so it survives restarts."""

import inspect
import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from radiofit.core.config import get_settings
from radiofit.models.database import ReminderSchedule
from radiofit.services.timezone import TimezoneResolver

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[str, str], Optional[Awaitable[Any]]]

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_reminder_time(value: str) -> tuple[int, int]:
    """Parse "HH:MM" (24h) into (hour, minute)."""
    match = _TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Reminder time must be HH:MM, got {value!r}")
    return int(match.group(1)), int(match.group(2))


def next_occurrence(hour: int, minute: int, tz_name: str, now: datetime) -> datetime:
    """Next instant (aware UTC) at which the wall clock in ``tz_name`` shows hour:minute."""
    zone = ZoneInfo(tz_name)
    local_now = now.astimezone(zone)
    candidate = datetime.combine(local_now.date(), time(hour, minute), tzinfo=zone)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), time(hour, minute), tzinfo=zone)
    return candidate.astimezone(timezone.utc)


def log_reminder(title: str, body: str) -> None:
    logger.info(f"Reminder: {title} - {body}")


class ReminderScheduler:
    """Schedules one daily reminder at a local wall-clock time."""

    JOB_ID = "daily_reminder"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        resolver: TimezoneResolver,
        notify: NotifyCallback = log_reminder,
    ):
        self._session_maker = session_maker
        self.resolver = resolver
        self._notify = notify
        self._scheduler: AsyncIOScheduler | None = None

    def _get_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.start()
        return self._scheduler

    async def schedule(self, time_str: str, tz_name: Optional[str] = None) -> datetime:
        """Replace any existing reminder with a daily one at ``time_str``.

        The reminder fires at that wall-clock time in ``tz_name`` (default
        the ambient zone) until it is scheduled again.

        Returns:
            The next run as an aware UTC datetime.
        """
        hour, minute = parse_reminder_time(time_str)
        if not tz_name or not self.resolver.is_valid_timezone(tz_name):
            tz_name = self.resolver.current_info().timezone
        next_run = next_occurrence(hour, minute, tz_name, self.resolver.now())

        await self._save(time_str, tz_name, next_run)

        self._get_scheduler().add_job(
            self._fire,
            CronTrigger(hour=hour, minute=minute, timezone=ZoneInfo(tz_name)),
            id=self.JOB_ID,
            name="Daily exercise reminder",
            replace_existing=True,
            kwargs={"time_str": time_str, "tz_name": tz_name},
        )
        logger.info(f"Reminder scheduled daily at {time_str} ({tz_name}), next at {next_run.isoformat()}")
        return next_run

    async def cancel(self) -> None:
        if self._scheduler is not None and self._scheduler.get_job(self.JOB_ID):
            self._scheduler.remove_job(self.JOB_ID)
        await self._clear()
        logger.info("Reminder cancelled")

    async def restore(self) -> bool:
        """Re-arm a persisted reminder; expired ones are cleared. Returns True if re-armed."""
        saved = await self._load()
        if saved is None:
            logger.info("No reminder to restore")
            return False

        next_run_at = saved.next_run_at.replace(tzinfo=timezone.utc)
        if next_run_at > self.resolver.now():
            logger.info(f"Restoring reminder at {saved.time} ({saved.timezone})")
            await self.schedule(saved.time, saved.timezone)
            return True

        logger.info(f"Found expired reminder (was due {next_run_at.isoformat()}), clearing it")
        await self._clear()
        return False

    def next_run_time(self) -> datetime | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    async def current(self) -> ReminderSchedule | None:
        return await self._load()

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    async def _fire(self, time_str: str, tz_name: Optional[str] = None) -> None:
        settings = get_settings()
        try:
            outcome = self._notify(settings.reminder_title, settings.reminder_body)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Failed to show reminder: {e}")

        # Keep the persisted schedule pointing at the next day
        hour, minute = parse_reminder_time(time_str)
        tz_name = tz_name or self.resolver.current_info().timezone
        await self._save(time_str, tz_name, next_occurrence(hour, minute, tz_name, self.resolver.now()))

    async def _save(self, time_str: str, tz_name: str, next_run: datetime) -> None:
        async with self._session_maker() as session:
            await session.execute(delete(ReminderSchedule))
            session.add(ReminderSchedule(
                time=time_str,
                timezone=tz_name,
                next_run_at=next_run.astimezone(timezone.utc).replace(tzinfo=None),
            ))
            await session.commit()

    async def _load(self) -> ReminderSchedule | None:
        async with self._session_maker() as session:
            result = await session.execute(select(ReminderSchedule).limit(1))
            return result.scalar_one_or_none()

    async def _clear(self) -> None:
        async with self._session_maker() as session:
            await session.execute(delete(ReminderSchedule))
            await session.commit()
