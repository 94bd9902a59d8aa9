"""Tests for record storage and the record store."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from radiofit.core.exceptions import RecordWriteError, TimezoneDetectionError
from radiofit.schemas.records import TimezoneErrorKind
from radiofit.services.migration import is_timezone_aware



def utc_ms(year, month, day, hour=0, minute=0):
    return int(datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp() * 1000)


class TestRecordStorage:

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, services):
        assert await services.storage.get("2025-01-15") is None

    @pytest.mark.asyncio
    async def test_set_replaces_whole_list(self, services):
        await services.storage.set("2025-01-15", [{"a": 1}])
        await services.storage.set("2025-01-15", [{"b": 2}, {"c": 3}])

        assert await services.storage.get("2025-01-15") == [{"b": 2}, {"c": 3}]

    @pytest.mark.asyncio
    async def test_iterate_visits_every_key(self, services):
        await services.storage.set("2025-01-16", [{"n": 2}])
        await services.storage.set("2025-01-15", [{"n": 1}])
        seen = []

        await services.storage.iterate(lambda value, key: seen.append((key, value)))

        assert seen == [("2025-01-15", [{"n": 1}]), ("2025-01-16", [{"n": 2}])]

    @pytest.mark.asyncio
    async def test_lock_exists_only_while_held(self, services):
        async with services.storage.lock("2025-01-15"):
            assert services.storage.active_locks() == 1

        assert services.storage.active_locks() == 0

    @pytest.mark.asyncio
    async def test_iterate_accepts_coroutine_visitor(self, services):
        await services.storage.set("2025-01-15", [{"n": 1}])
        seen = []

        async def visit(value, key):
            seen.append(key)

        await services.storage.iterate(visit)

        assert seen == ["2025-01-15"]


class TestRecord:

    @pytest.mark.asyncio
    async def test_stamps_timezone_fields(self, services):
        record = await services.records.record("first")

        assert record.date == "2025-01-15"
        assert record.type == "first"
        assert record.timestamp == utc_ms(2025, 1, 15, 0, 30)
        assert record.timezone == "Asia/Tokyo"
        assert record.timezone_offset == 540
        assert record.local_timestamp == record.timestamp + 540 * 60_000
        assert is_timezone_aware(record)

    @pytest.mark.asyncio
    async def test_date_is_local_not_utc(self, services):
        # 20:00 UTC is already the next day in Tokyo
        record = await services.records.record("second", at=datetime(2025, 1, 15, 20, 0, tzinfo=timezone.utc))

        assert record.date == "2025-01-16"
        assert await services.records.records_for_date("2025-01-16") == [record]

    @pytest.mark.asyncio
    async def test_appends_to_existing_day(self, services):
        await services.records.record("first")
        await services.records.record("second")

        records = await services.records.records_for_date("2025-01-15")
        assert [r.type for r in records] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_concurrent_records_on_same_day_are_all_kept(self, services):
        await asyncio.gather(*(services.records.record("first") for _ in range(10)))

        assert len(await services.records.records_for_date("2025-01-15")) == 10
        assert services.storage.active_locks() == 0

    @pytest.mark.asyncio
    async def test_detection_failure_propagates(self, services, detector):
        detector.fail = True

        with pytest.raises(TimezoneDetectionError):
            await services.records.record("first")

        assert await services.records.all_records() == []

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, services, monkeypatch):
        monkeypatch.setattr(services.storage, "set", AsyncMock(side_effect=RuntimeError("disk full")))

        with pytest.raises(RecordWriteError) as exc_info:
            await services.records.record("first")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert services.storage.active_locks() == 0

    @pytest.mark.asyncio
    async def test_rejects_unknown_type(self, services):
        with pytest.raises(ValueError):
            await services.records.record("third")


class TestReading:

    @pytest.mark.asyncio
    async def test_all_records_sorted_by_date(self, services):
        await services.records.record("first", at=datetime(2025, 1, 12, 1, tzinfo=timezone.utc))
        await services.records.record("first", at=datetime(2025, 1, 10, 1, tzinfo=timezone.utc))
        await services.records.record("second", at=datetime(2025, 1, 11, 1, tzinfo=timezone.utc))

        records = await services.records.all_records()

        assert [r.date for r in records] == ["2025-01-10", "2025-01-11", "2025-01-12"]

    @pytest.mark.asyncio
    async def test_all_records_empty_on_storage_failure(self, services, monkeypatch):
        monkeypatch.setattr(services.storage, "iterate", AsyncMock(side_effect=RuntimeError("corrupt")))

        assert await services.records.all_records() == []

    @pytest.mark.asyncio
    async def test_records_for_missing_date(self, services):
        assert await services.records.records_for_date("1999-01-01") == []

    @pytest.mark.asyncio
    async def test_records_for_date_empty_on_storage_failure(self, services, monkeypatch):
        monkeypatch.setattr(services.storage, "get", AsyncMock(side_effect=RuntimeError("corrupt")))

        assert await services.records.records_for_date("2025-01-15") == []

    @pytest.mark.asyncio
    async def test_reads_camel_case_legacy_fields(self, services):
        await services.storage.set("2025-01-15", [{
            "date": "2025-01-15",
            "type": "first",
            "timestamp": utc_ms(2025, 1, 15, 0, 30),
            "timezone": "Asia/Tokyo",
            "timezoneOffset": 540,
            "localTimestamp": utc_ms(2025, 1, 15, 9, 30),
        }])

        [record] = await services.records.records_for_date("2025-01-15")

        assert record.timezone_offset == 540
        assert is_timezone_aware(record)


class TestRecordsConvertedTo:

    @pytest.mark.asyncio
    async def test_converts_to_target_timezone(self, services):
        await services.records.record("first")  # 09:30 Tokyo, 19:30 the day before in New York

        [record] = await services.records.records_converted_to("America/New_York")

        assert record.date == "2025-01-14"
        assert record.timezone == "America/New_York"
        assert record.timezone_offset == -300
        assert record.timestamp == utc_ms(2025, 1, 15, 0, 30)
        assert record.local_timestamp == record.timestamp - 300 * 60_000

    @pytest.mark.asyncio
    async def test_same_timezone_passes_through(self, services):
        stored = await services.records.record("first")

        assert await services.records.records_converted_to("Asia/Tokyo") == [stored]

    @pytest.mark.asyncio
    async def test_defaults_to_ambient_timezone(self, services, detector):
        await services.records.record("first")
        detector.timezone = "Europe/London"

        [record] = await services.records.records_converted_to()

        assert record.timezone == "Europe/London"
        assert record.date == "2025-01-15"

    @pytest.mark.asyncio
    async def test_migrates_legacy_records(self, services):
        await services.storage.set("2025-01-10", [
            {"date": "2025-01-10", "type": "first", "timestamp": utc_ms(2025, 1, 10, 0, 30)},
        ])

        [record] = await services.records.records_converted_to("Asia/Tokyo")

        assert is_timezone_aware(record)
        assert record.timezone_offset == 540

    @pytest.mark.asyncio
    async def test_bad_record_does_not_abort_batch(self, services):
        await services.storage.set("2025-01-11", [
            {"date": "2025-01-11", "type": "first", "timestamp": "invalid-timestamp"},
        ])
        await services.records.record("second")

        records = await services.records.records_converted_to("America/New_York")

        assert len(records) == 2
        converted = [r for r in records if r.timezone == "America/New_York"]
        assert len(converted) == 1
        assert converted[0].date == "2025-01-14"
        bad = [r for r in records if r.date == "2025-01-11"]
        assert bad[0].timestamp == "invalid-timestamp"
        assert not is_timezone_aware(bad[0])

    @pytest.mark.asyncio
    async def test_invalid_target_returns_unconverted(self, services):
        stored = await services.records.record("first")

        records = await services.records.records_converted_to("Invalid/Timezone")

        assert records == [stored]
        assert services.reporter.count_by_kind(TimezoneErrorKind.INVALID_TIMEZONE) == 1

    @pytest.mark.asyncio
    async def test_result_sorted_by_converted_date(self, services):
        await services.records.record("first", at=datetime(2025, 1, 12, 1, tzinfo=timezone.utc))
        await services.records.record("first", at=datetime(2025, 1, 10, 1, tzinfo=timezone.utc))

        records = await services.records.records_converted_to("America/Los_Angeles")

        assert [r.date for r in records] == ["2025-01-09", "2025-01-11"]
