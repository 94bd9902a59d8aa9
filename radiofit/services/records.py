"""Recording and reading exercise completions."""

import logging
from datetime import datetime
from typing import Optional

from radiofit.core.exceptions import RecordWriteError
from radiofit.schemas.records import ExerciseRecord, ExerciseType
from radiofit.services.migration import MS_PER_MINUTE, MigrationEngine, is_timezone_aware
from radiofit.services.storage import RecordStorage, StoredRecords
from radiofit.services.timezone import TimezoneResolver, as_instant, from_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)


def _sort_by_date(records: list[ExerciseRecord]) -> list[ExerciseRecord]:
    # YYYY-MM-DD sorts lexicographically in date order
    return sorted(records, key=lambda r: str(r.date))


class RecordStore:
    """Entity model and persistence for exercise records, keyed by local date."""

    def __init__(self, storage: RecordStorage, resolver: TimezoneResolver, migration: MigrationEngine):
        self.storage = storage
        self.resolver = resolver
        self.migration = migration

    async def record(self, exercise_type: ExerciseType, at: Optional[datetime] = None) -> ExerciseRecord:
        """Stamp and persist one completed exercise.

        Args:
            exercise_type: "first" or "second"
            at: Instant of completion (default now)

        Raises:
            TimezoneDetectionError: the ambient timezone is unknown
            RecordWriteError: the record could not be saved
        """
        tz_name = self.resolver.ambient_timezone()
        instant = as_instant(at) if at is not None else self.resolver.now()
        info = self.resolver.info_for(tz_name, instant)
        timestamp = to_epoch_ms(instant)

        record = ExerciseRecord(
            date=info.local_time.date().isoformat(),
            type=exercise_type,
            timestamp=timestamp,
            timezone=info.timezone,
            timezone_offset=info.offset,
            local_timestamp=timestamp + info.offset * MS_PER_MINUTE,
        )

        # Serialized per date key so concurrent appends cannot drop each other
        async with self.storage.lock(record.date):
            try:
                existing = await self.storage.get(record.date) or []
                await self.storage.set(record.date, [*existing, record.to_storage()])
            except Exception as e:
                logger.error(f"Failed to save {exercise_type} record for {record.date}: {e}")
                raise RecordWriteError(f"Failed to save {exercise_type} record for {record.date}") from e

        logger.info(f"Recorded {exercise_type} exercise for {record.date} ({tz_name})")
        return record

    async def all_records(self) -> list[ExerciseRecord]:
        """Every stored record sorted by date; empty list if storage cannot be read."""
        records: list[ExerciseRecord] = []

        def collect(value: StoredRecords, key: str) -> None:
            for item in value:
                if isinstance(item, dict):
                    records.append(ExerciseRecord.from_storage(item))

        try:
            await self.storage.iterate(collect)
        except Exception as e:
            logger.error(f"Failed to read records: {e}")
            return []

        return _sort_by_date(records)

    async def records_for_date(self, date: str) -> list[ExerciseRecord]:
        try:
            raw = await self.storage.get(date) or []
            return [ExerciseRecord.from_storage(item) for item in raw if isinstance(item, dict)]
        except Exception as e:
            logger.error(f"Failed to read records for {date}: {e}")
            return []

    async def records_converted_to(self, target_timezone: Optional[str] = None) -> list[ExerciseRecord]:
        """All records, migrated and re-expressed in ``target_timezone`` (default ambient)."""
        target = target_timezone or self.resolver.current_info().timezone
        records = self.migration.migrate_many(await self.all_records())

        if not self.resolver.is_valid_timezone(target):
            self.resolver.reporter.invalid_timezone(target, "record conversion")
            return records

        return _sort_by_date([self._convert(record, target) for record in records])

    def _convert(self, record: ExerciseRecord, target: str) -> ExerciseRecord:
        if record.timezone == target and is_timezone_aware(record):
            return record

        try:
            info = self.resolver.info_for(target, from_epoch_ms(record.timestamp))
            return record.model_copy(update={
                "date": info.local_time.date().isoformat(),
                "timezone": target,
                "timezone_offset": info.offset,
                "local_timestamp": record.timestamp + info.offset * MS_PER_MINUTE,
            })
        except Exception as e:
            self.resolver.reporter.conversion_error(f"Converting record for {record.date} to {target}", e)
            return record
