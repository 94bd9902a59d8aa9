"""Streaks, calendar buckets and local-date helpers over exercise records.

Everything here is a pure read: failures are reported and a simpler
fallback result is returned rather than raising.
"""

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from radiofit.schemas.records import CalendarDate, ExerciseRecord, RecordFilter, RecordStats
from radiofit.services.errors import TimezoneErrorReporter
from radiofit.services.migration import is_finite_number, is_timezone_aware
from radiofit.services.timezone import TimezoneResolver, as_instant, wall_clock_date

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000


def _previous_day(date_str: str) -> str:
    """Calendar day before ``date_str``, using date arithmetic (DST-safe)."""
    return (date.fromisoformat(date_str) - timedelta(days=1)).isoformat()


def _previous_day_naive(date_str: str) -> str:
    midnight = datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return (midnight - timedelta(milliseconds=MS_PER_DAY)).date().isoformat()


def _walk_back(dates_desc: list[str], start: str, step) -> int:
    streak = 0
    expected = start
    for date_str in dates_desc:
        if date_str == expected:
            streak += 1
            expected = step(expected)
        elif date_str < expected:
            # gap
            break
    return streak


def _local_noon(date_str: str) -> datetime:
    return datetime.combine(date.fromisoformat(date_str), time(12, 0))


class RecordCalendar:
    """Timezone-aware streak calculation and calendar projection."""

    def __init__(self, resolver: TimezoneResolver):
        self.resolver = resolver

    @property
    def reporter(self) -> TimezoneErrorReporter:
        return self.resolver.reporter

    def _ambient(self) -> str:
        return self.resolver.current_info().timezone

    def local_date(self, record: ExerciseRecord, tz_name: str) -> str:
        """Local calendar date of a record.

        Aware records use their own wall-clock value, legacy records have
        their UTC timestamp read in ``tz_name``, anything else keeps its
        stored ``date``.
        """
        if is_timezone_aware(record):
            return wall_clock_date(record.local_timestamp)
        if is_finite_number(record.timestamp) and record.timestamp:
            return self.resolver.local_date_for_timestamp(int(record.timestamp), tz_name)
        return record.date

    def group_by_local_date(self, records: list[ExerciseRecord], tz_name: str) -> dict[str, list[ExerciseRecord]]:
        grouped: dict[str, list[ExerciseRecord]] = {}
        for record in records:
            grouped.setdefault(self.local_date(record, tz_name), []).append(record)
        return grouped

    @staticmethod
    def _group_by_stored_date(records: list[ExerciseRecord]) -> dict[str, list[ExerciseRecord]]:
        grouped: dict[str, list[ExerciseRecord]] = {}
        for record in records:
            grouped.setdefault(record.date, []).append(record)
        return grouped

    def current_streak(self, records: list[ExerciseRecord], tz_name: Optional[str] = None) -> int:
        """Consecutive local days with a record, counting back from today.

        "Today" and the record dates are read in ``tz_name`` (default the
        ambient zone).
        """
        if not records:
            return 0

        try:
            tz_name = tz_name or self._ambient()
            today = self.resolver.format_local_date_string(self.resolver.now(), tz_name)
            by_date = self.group_by_local_date(records, tz_name)
            return _walk_back(sorted(by_date, reverse=True), today, _previous_day)
        except Exception as e:
            self.reporter.conversion_error("Streak calculation", e)
            return self._simple_streak(records)

    def _simple_streak(self, records: list[ExerciseRecord]) -> int:
        """Streak over the stored date strings, counted from today's UTC date."""
        try:
            today = self.resolver.now().date().isoformat()
            dates = sorted({r.date for r in records if isinstance(r.date, str)}, reverse=True)
            return _walk_back(dates, today, _previous_day_naive)
        except Exception as e:
            logger.error(f"Simple streak calculation failed: {e}")
            return 0

    def longest_streak(self, records: list[ExerciseRecord], tz_name: Optional[str] = None) -> int:
        """Longest run of consecutive local days anywhere in the history."""
        if not records:
            return 0

        try:
            date_strings = self.group_by_local_date(records, tz_name or self._ambient()).keys()
        except Exception as e:
            self.reporter.conversion_error("Longest streak calculation", e)
            date_strings = self._group_by_stored_date(records).keys()

        days = []
        for date_str in date_strings:
            try:
                days.append(date.fromisoformat(date_str))
            except (TypeError, ValueError):
                logger.warning(f"Ignoring unparseable record date {date_str!r}")
        days.sort()

        longest = run = 0
        previous = None
        for day in days:
            run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
            longest = max(longest, run)
            previous = day
        return longest

    def convert_for_calendar(self, records: list[ExerciseRecord], display_timezone: str) -> list[CalendarDate]:
        """One CalendarDate per local date in ``display_timezone``, dated at local noon."""
        try:
            by_date = self.group_by_local_date(records, display_timezone)
            return [
                CalendarDate(date=_local_noon(date_str), records=day_records, local_date_string=date_str)
                for date_str, day_records in by_date.items()
            ]
        except Exception as e:
            self.reporter.conversion_error("Calendar conversion", e)
            return self._convert_simple(records)

    def _convert_simple(self, records: list[ExerciseRecord]) -> list[CalendarDate]:
        calendar_dates = []
        for date_str, day_records in self._group_by_stored_date(records).items():
            try:
                noon = _local_noon(date_str)
            except (TypeError, ValueError):
                logger.warning(f"Skipping records with unparseable date {date_str!r}")
                continue
            calendar_dates.append(CalendarDate(date=noon, records=day_records, local_date_string=date_str))
        return calendar_dates

    def is_same_local_date(self, first: datetime, second: datetime, tz_name: str) -> bool:
        try:
            return (
                self.resolver.format_local_date_string(first, tz_name)
                == self.resolver.format_local_date_string(second, tz_name)
            )
        except Exception as e:
            logger.error(f"Failed to compare local dates: {e}")
            return as_instant(first).astimezone(timezone.utc).date() == as_instant(second).astimezone(timezone.utc).date()

    def is_today(self, value: datetime, tz_name: Optional[str] = None) -> bool:
        try:
            return self.is_same_local_date(value, self.resolver.now(), tz_name or self._ambient())
        except Exception as e:
            logger.error(f"Failed to check if date is today: {e}")
            return as_instant(value).astimezone(timezone.utc).date() == datetime.now(timezone.utc).date()

    def days_between(self, first: datetime, second: datetime, tz_name: Optional[str] = None) -> int:
        """Whole local days between two instants (absolute)."""
        try:
            tz_name = tz_name or self._ambient()
            day1 = date.fromisoformat(self.resolver.format_local_date_string(first, tz_name))
            day2 = date.fromisoformat(self.resolver.format_local_date_string(second, tz_name))
            return abs((day2 - day1).days)
        except Exception as e:
            logger.error(f"Failed to calculate days between dates: {e}")
            diff_ms = abs((as_instant(second) - as_instant(first)).total_seconds()) * 1000
            return math.ceil(diff_ms / MS_PER_DAY)

    def week_start(self, value: datetime, tz_name: Optional[str] = None) -> datetime:
        """Local midnight of the most recent Sunday (naive datetime)."""
        try:
            tz_name = tz_name or self._ambient()
            local_day = date.fromisoformat(self.resolver.format_local_date_string(value, tz_name))
        except Exception as e:
            logger.error(f"Failed to get week start: {e}")
            local_day = as_instant(value).astimezone(timezone.utc).date()
        sunday = local_day - timedelta(days=(local_day.weekday() + 1) % 7)
        return datetime.combine(sunday, time.min)

    def filter_records(self, records: list[ExerciseRecord], record_filter: RecordFilter) -> list[ExerciseRecord]:
        """Records whose local date falls in the filter's range and whose type matches."""
        tz_name = record_filter.timezone or self._ambient()
        wanted_type = None if record_filter.type in (None, "both") else record_filter.type

        matched = []
        for record in records:
            if wanted_type is not None and record.type != wanted_type:
                continue
            try:
                local = self.local_date(record, tz_name)
            except Exception as e:
                logger.warning(f"Using stored date for record on {record.date}: {e}")
                local = record.date
            if record_filter.start_date and local < record_filter.start_date:
                continue
            if record_filter.end_date and local > record_filter.end_date:
                continue
            matched.append(record)
        return matched

    def record_stats(self, records: list[ExerciseRecord], tz_name: Optional[str] = None) -> RecordStats:
        dates = sorted(r.date for r in records if isinstance(r.date, str))
        return RecordStats(
            total_records=len(records),
            current_streak=self.current_streak(records, tz_name),
            longest_streak=self.longest_streak(records, tz_name),
            first_record_date=dates[0] if dates else None,
            last_record_date=dates[-1] if dates else None,
        )
