"""Central funnel for timezone failures and the notifications they raise."""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from radiofit.schemas.records import TimezoneErrorEntry, TimezoneErrorKind, TimezoneInfo

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning", "info"]
NotificationCallback = Callable[[str, Severity], None]

DEFAULT_LOG_SIZE = 50

_SEVERITY: dict[TimezoneErrorKind, Severity] = {
    TimezoneErrorKind.DETECTION_FAILED: "warning",
    TimezoneErrorKind.INVALID_TIMEZONE: "warning",
    TimezoneErrorKind.CONVERSION_ERROR: "error",
}

_USER_MESSAGES: dict[TimezoneErrorKind, str] = {
    TimezoneErrorKind.DETECTION_FAILED: "Your timezone could not be detected automatically. Times are shown in UTC.",
    TimezoneErrorKind.INVALID_TIMEZONE: "There is a problem with your timezone setting. Times are shown in standard time.",
    TimezoneErrorKind.CONVERSION_ERROR: "Converting a time failed. Some times may be displayed incorrectly.",
}


class TimezoneErrorReporter:
    """Records timezone failures and fans user-facing messages out to subscribers.

    Subscribers are plain callables taking ``(message, severity)``. Owned by
    whoever builds the services so tests can use independent instances.
    """

    def __init__(self, max_log_size: int = DEFAULT_LOG_SIZE):
        self._log: deque[TimezoneErrorEntry] = deque(maxlen=max_log_size)
        self._subscribers: list[NotificationCallback] = []

    def report(self, kind: TimezoneErrorKind | str, message: str, fallback_action: str) -> TimezoneErrorEntry:
        """Log a failure and notify subscribers with the canned message for its kind."""
        kind = TimezoneErrorKind(kind)
        entry = TimezoneErrorEntry(
            type=kind,
            message=message,
            fallback_action=fallback_action,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self._log.append(entry)

        logger.error(f"Timezone error [{kind.value}]: {message}")
        logger.info(f"Fallback action: {fallback_action}")

        self.notify(_USER_MESSAGES[kind], _SEVERITY[kind])
        return entry

    def notify(self, message: str, severity: Severity = "error") -> None:
        """Deliver a message to every subscriber; never raises."""
        if not self._subscribers:
            logger.warning(f"User notification ({severity}): {message}")
            return

        for callback in list(self._subscribers):
            try:
                callback(message, severity)
            except Exception as e:
                logger.error(f"Notification callback error: {e!r}")

    def subscribe(self, callback: NotificationCallback) -> Callable[[], None]:
        """Register a subscriber. Returns a function that removes it again."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: NotificationCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def unsubscribe_all(self) -> None:
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def error_log(self) -> list[TimezoneErrorEntry]:
        """Copy of the retained entries, oldest first."""
        return list(self._log)

    def clear_log(self) -> None:
        self._log.clear()

    def count_by_kind(self, kind: Optional[TimezoneErrorKind | str] = None) -> int:
        """Number of retained entries, optionally only those of one kind."""
        if kind is None:
            return len(self._log)
        kind = TimezoneErrorKind(kind)
        return sum(1 for entry in self._log if entry.type == kind)

    # Helpers for each failure kind

    def detection_failed(self, error: BaseException | str, now: Optional[datetime] = None) -> TimezoneInfo:
        """Report a detection failure and return a ready-to-use UTC snapshot."""
        self.report(
            TimezoneErrorKind.DETECTION_FAILED,
            f"Timezone detection failed: {error}",
            "Using UTC",
        )
        now = now or datetime.now(timezone.utc)
        return TimezoneInfo(timezone="UTC", offset=0, local_time=now, utc_time=now)

    def invalid_timezone(self, tz_name: str, operation: str) -> TimezoneErrorEntry:
        return self.report(
            TimezoneErrorKind.INVALID_TIMEZONE,
            f"Invalid timezone '{tz_name}' during {operation}",
            "Using UTC",
        )

    def conversion_error(self, operation: str, error: BaseException | str) -> TimezoneErrorEntry:
        return self.report(
            TimezoneErrorKind.CONVERSION_ERROR,
            f"{operation} failed: {error}",
            "Returning the unconverted value",
        )
