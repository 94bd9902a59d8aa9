"""Explicit wiring of the record and timezone services."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from radiofit.core.config import get_settings
from radiofit.services.calendar import RecordCalendar
from radiofit.services.change_detector import TimezoneChangeDetector, VisibilityEvents
from radiofit.services.errors import TimezoneErrorReporter
from radiofit.services.migration import MigrationEngine
from radiofit.services.records import RecordStore
from radiofit.services.reminders import NotifyCallback, ReminderScheduler, log_reminder
from radiofit.services.storage import RecordStorage
from radiofit.services.timezone import TimezoneResolver, detect_system_timezone, utc_now


@dataclass
class Services:
    reporter: TimezoneErrorReporter
    resolver: TimezoneResolver
    storage: RecordStorage
    migration: MigrationEngine
    records: RecordStore
    calendar: RecordCalendar
    visibility: VisibilityEvents
    detector: TimezoneChangeDetector
    reminders: ReminderScheduler


def build_services(
    session_maker: async_sessionmaker[AsyncSession],
    detector: Callable[[], str] = detect_system_timezone,
    clock: Callable[[], datetime] = utc_now,
    notify: NotifyCallback = log_reminder,
) -> Services:
    """Build one independent set of services sharing a reporter and storage."""
    settings = get_settings()

    reporter = TimezoneErrorReporter(max_log_size=settings.error_log_size)
    resolver = TimezoneResolver(reporter, detector=detector, clock=clock)
    storage = RecordStorage(session_maker)
    migration = MigrationEngine(resolver, storage)
    visibility = VisibilityEvents()

    return Services(
        reporter=reporter,
        resolver=resolver,
        storage=storage,
        migration=migration,
        records=RecordStore(storage, resolver, migration),
        calendar=RecordCalendar(resolver),
        visibility=visibility,
        detector=TimezoneChangeDetector(
            resolver,
            visibility=visibility,
            interval_seconds=settings.timezone_check_interval_seconds,
        ),
        reminders=ReminderScheduler(session_maker, resolver, notify),
    )


def get_services(request: Request) -> Services:
    """Dependency for FastAPI to get the application's services."""
    return request.app.state.services
