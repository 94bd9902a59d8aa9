"""Tests for the timezone error reporter."""

import logging
from unittest.mock import MagicMock

import pytest

from radiofit.schemas.records import TimezoneErrorKind
from radiofit.services.errors import TimezoneErrorReporter


class TestReport:

    def test_records_entry(self, reporter):
        reporter.report("detection_failed", "test error", "fallback")

        log = reporter.error_log()
        assert len(log) == 1
        assert log[0].type == TimezoneErrorKind.DETECTION_FAILED
        assert log[0].message == "test error"
        assert log[0].fallback_action == "fallback"
        assert log[0].timestamp

    def test_logs_error_and_fallback(self, reporter, caplog):
        with caplog.at_level(logging.INFO, logger="radiofit.services.errors"):
            reporter.report(TimezoneErrorKind.CONVERSION_ERROR, "conversion broke", "use UTC")

        assert "Timezone error [conversion_error]: conversion broke" in caplog.text
        assert "Fallback action: use UTC" in caplog.text

    @pytest.mark.parametrize("kind,severity", [
        ("detection_failed", "warning"),
        ("invalid_timezone", "warning"),
        ("conversion_error", "error"),
    ])
    def test_severity_per_kind(self, reporter, kind, severity):
        callback = MagicMock()
        reporter.subscribe(callback)

        reporter.report(kind, "raw message", "fallback")

        callback.assert_called_once()
        message, sent_severity = callback.call_args[0]
        assert sent_severity == severity
        # Canned user-facing text, not the raw message
        assert message != "raw message"

    def test_messages_are_fixed_per_kind(self, reporter):
        callback = MagicMock()
        reporter.subscribe(callback)

        reporter.report("invalid_timezone", "first", "x")
        reporter.report("invalid_timezone", "second", "y")

        assert callback.call_args_list[0] == callback.call_args_list[1]

    def test_unknown_kind_raises(self, reporter):
        with pytest.raises(ValueError):
            reporter.report("mystery", "m", "f")


class TestNotify:

    def test_calls_subscriber(self, reporter):
        callback = MagicMock()
        reporter.subscribe(callback)

        reporter.notify("hello", "info")

        callback.assert_called_once_with("hello", "info")

    def test_defaults_to_error_severity(self, reporter):
        callback = MagicMock()
        reporter.subscribe(callback)

        reporter.notify("hello")

        callback.assert_called_once_with("hello", "error")

    def test_failing_subscriber_does_not_block_others(self, reporter, caplog):
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        reporter.subscribe(broken)
        reporter.subscribe(healthy)

        reporter.notify("hello")

        healthy.assert_called_once_with("hello", "error")
        assert "Notification callback error" in caplog.text

    def test_without_subscribers_falls_back_to_log(self, reporter, caplog):
        with caplog.at_level(logging.WARNING, logger="radiofit.services.errors"):
            reporter.notify("nobody listening", "warning")

        assert "nobody listening" in caplog.text


class TestSubscriptions:

    def test_unsubscribe_function(self, reporter):
        first, second = MagicMock(), MagicMock()
        unsubscribe = reporter.subscribe(first)
        reporter.subscribe(second)

        unsubscribe()
        reporter.notify("after")

        first.assert_not_called()
        second.assert_called_once()

    def test_unsubscribe_all(self, reporter):
        first, second = MagicMock(), MagicMock()
        reporter.subscribe(first)
        reporter.subscribe(second)

        reporter.unsubscribe_all()
        reporter.notify("after")

        first.assert_not_called()
        second.assert_not_called()
        assert reporter.subscriber_count == 0

    def test_instances_are_independent(self):
        first, second = TimezoneErrorReporter(), TimezoneErrorReporter()
        callback = MagicMock()
        first.subscribe(callback)

        second.report("conversion_error", "m", "f")

        callback.assert_not_called()
        assert first.count_by_kind() == 0


class TestErrorLog:

    def test_keeps_order(self, reporter):
        reporter.report("detection_failed", "error 1", "f")
        reporter.report("conversion_error", "error 2", "f")

        assert [e.message for e in reporter.error_log()] == ["error 1", "error 2"]

    def test_bounded_to_fifty_entries(self, reporter):
        for i in range(51):
            reporter.report("detection_failed", f"error {i}", "f")

        log = reporter.error_log()
        assert len(log) == 50
        assert log[0].message == "error 1"
        assert log[49].message == "error 50"

    def test_custom_size(self):
        reporter = TimezoneErrorReporter(max_log_size=3)
        for i in range(5):
            reporter.report("detection_failed", f"error {i}", "f")

        assert [e.message for e in reporter.error_log()] == ["error 2", "error 3", "error 4"]

    def test_log_is_a_copy(self, reporter):
        reporter.report("detection_failed", "error", "f")

        reporter.error_log().clear()

        assert reporter.count_by_kind() == 1

    def test_count_by_kind(self, reporter):
        reporter.report("detection_failed", "1", "f")
        reporter.report("conversion_error", "2", "f")
        reporter.report("detection_failed", "3", "f")

        assert reporter.count_by_kind() == 3
        assert reporter.count_by_kind("detection_failed") == 2
        assert reporter.count_by_kind(TimezoneErrorKind.CONVERSION_ERROR) == 1
        assert reporter.count_by_kind("invalid_timezone") == 0

    def test_clear_log(self, reporter):
        reporter.report("detection_failed", "error", "f")

        reporter.clear_log()

        assert reporter.error_log() == []


class TestKindHelpers:

    def test_detection_failed_returns_utc_info(self, reporter):
        info = reporter.detection_failed(RuntimeError("detector exploded"))

        assert info.timezone == "UTC"
        assert info.offset == 0
        assert info.local_time == info.utc_time
        log = reporter.error_log()
        assert log[0].type == TimezoneErrorKind.DETECTION_FAILED
        assert "detector exploded" in log[0].message

    def test_invalid_timezone_mentions_zone_and_operation(self, reporter):
        reporter.invalid_timezone("Invalid/Timezone", "test operation")

        entry = reporter.error_log()[0]
        assert entry.type == TimezoneErrorKind.INVALID_TIMEZONE
        assert "Invalid/Timezone" in entry.message
        assert "test operation" in entry.message

    def test_conversion_error_mentions_operation_and_cause(self, reporter):
        reporter.conversion_error("test conversion", ValueError("bad value"))

        entry = reporter.error_log()[0]
        assert entry.type == TimezoneErrorKind.CONVERSION_ERROR
        assert "test conversion" in entry.message
        assert "bad value" in entry.message
