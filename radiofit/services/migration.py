"""Upgrade legacy exercise records to the timezone-aware schema."""

import logging
import math
from typing import Any, Optional

from radiofit.schemas.records import ExerciseRecord
from radiofit.services.storage import RecordStorage, StoredRecords
from radiofit.services.timezone import TimezoneResolver

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000


def is_timezone_aware(record: ExerciseRecord) -> bool:
    """True when timezone, offset (zero allowed) and local timestamp are all present."""
    return (
        record.timezone is not None
        and record.timezone_offset is not None
        and bool(record.local_timestamp)
    )


def is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class MigrationEngine:
    """Adds timezone fields to legacy records, singly or across the whole store.

    Migration never raises for a bad record: the record comes back without
    the new fields and the failure is logged.
    """

    def __init__(self, resolver: TimezoneResolver, storage: RecordStorage):
        self.resolver = resolver
        self.storage = storage

    def migrate_one(self, record: ExerciseRecord, tz_name: Optional[str] = None) -> ExerciseRecord:
        if is_timezone_aware(record):
            return record

        try:
            tz_name = tz_name or self.resolver.current_info().timezone
            if not self.resolver.is_valid_timezone(tz_name):
                self.resolver.reporter.invalid_timezone(tz_name, "record migration")
                logger.error(f"Cannot migrate record for {record.date}: invalid timezone {tz_name!r}")
                return record

            if not is_finite_number(record.timestamp):
                logger.error(
                    f"Cannot derive timezone fields for {record.date}: "
                    f"timestamp {record.timestamp!r} is not a number"
                )
                return record.model_copy(update={"timezone": tz_name})

            timestamp = int(record.timestamp)
            offset = self.resolver.offset_minutes(timestamp, tz_name)
            return record.model_copy(update={
                "timezone": tz_name,
                "timezone_offset": offset,
                "local_timestamp": timestamp + offset * MS_PER_MINUTE,
            })
        except Exception as e:
            logger.error(f"Failed to migrate record for {record.date}: {e}")
            return record

    def migrate_many(self, records: list[ExerciseRecord], tz_name: Optional[str] = None) -> list[ExerciseRecord]:
        return [self.migrate_one(record, tz_name) for record in records]

    async def migrate_all_stored(self) -> int:
        """Migrate every stored date key; returns the number of keys rewritten.

        A key is only written back when at least one of its records became
        timezone-aware. Bad records are skipped; storage failures are
        logged and re-raised.
        """
        keys: list[str] = []

        def collect(value: StoredRecords, key: str) -> None:
            keys.append(key)

        try:
            await self.storage.iterate(collect)
        except Exception as e:
            logger.error(f"Failed to read stored records for migration: {e}")
            raise

        tz_name = self.resolver.current_info().timezone
        logger.info(f"Migrating {len(keys)} date key(s) to timezone-aware records ({tz_name})")

        rewritten = 0
        for key in keys:
            async with self.storage.lock(key):
                try:
                    raw = await self.storage.get(key) or []
                except Exception as e:
                    logger.error(f"Failed to read records for {key} during migration: {e}")
                    raise

                try:
                    records = [ExerciseRecord.from_storage(item) for item in raw]
                    migrated = self.migrate_many(records, tz_name)
                    changed = any(
                        not is_timezone_aware(before) and is_timezone_aware(after)
                        for before, after in zip(records, migrated)
                    )
                    payload = [record.to_storage() for record in migrated]
                except Exception as e:
                    logger.error(f"Skipping {key} during migration: {e}")
                    continue

                if not changed:
                    continue

                try:
                    await self.storage.set(key, payload)
                except Exception as e:
                    logger.error(f"Failed to write migrated records for {key}: {e}")
                    raise
                rewritten += 1

        logger.info(f"Migration complete: {rewritten} date key(s) rewritten")
        return rewritten
