"""Poll for changes of the ambient timezone and notify subscribers."""

import logging
from typing import Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from radiofit.core.config import get_settings
from radiofit.services.timezone import FALLBACK_TIMEZONE, TimezoneResolver

logger = logging.getLogger(__name__)

TimezoneChangeCallback = Callable[[str, str], None]
VisibilityListener = Callable[[bool], None]


class VisibilityEvents:
    """Hub for "the app is visible again" signals (resume from sleep, window focus).

    The host calls ``set_visible`` from whatever platform hook it has.
    """

    def __init__(self):
        self._listeners: list[VisibilityListener] = []

    def add_listener(self, listener: VisibilityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: VisibilityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_visible(self, visible: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(visible)
            except Exception as e:
                logger.error(f"Error in visibility listener: {e}")


class TimezoneChangeDetector:
    """Samples the ambient timezone every interval and when the app becomes visible.

    Callbacks receive ``(new_timezone, old_timezone)``.
    """

    JOB_ID = "timezone_check"

    def __init__(
        self,
        resolver: TimezoneResolver,
        visibility: Optional[VisibilityEvents] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.resolver = resolver
        self.visibility = visibility or VisibilityEvents()
        self.interval_seconds = interval_seconds or get_settings().timezone_check_interval_seconds
        self._callbacks: dict[TimezoneChangeCallback, None] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._current_timezone = self.current_timezone_name()

    @property
    def current_timezone(self) -> str:
        """Last observed timezone."""
        return self._current_timezone

    def start_monitoring(self) -> None:
        """Start the interval poll. Needs a running event loop."""
        if self._scheduler is not None:
            logger.warning("Timezone monitoring is already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._poll,
            IntervalTrigger(seconds=self.interval_seconds),
            id=self.JOB_ID,
            name="Timezone change check",
            replace_existing=True,
        )
        self._scheduler.start()
        self.visibility.add_listener(self._on_visibility_change)
        logger.info(f"Timezone monitoring started - checking every {self.interval_seconds}s")

    def stop_monitoring(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Timezone monitoring stopped")

        self.visibility.remove_listener(self._on_visibility_change)

    def is_running(self) -> bool:
        return self._scheduler is not None

    def on_change(self, callback: TimezoneChangeCallback) -> Callable[[], None]:
        """Register a change callback. Returns a function that removes it."""
        self._callbacks[callback] = None
        return lambda: self._callbacks.pop(callback, None)

    def callback_count(self) -> int:
        return len(self._callbacks)

    def current_timezone_name(self) -> str:
        try:
            return self.resolver.current_info().timezone
        except Exception as e:
            logger.error(f"Failed to get current timezone: {e}")
            return FALLBACK_TIMEZONE

    def check_now(self) -> bool:
        """Compare the detected timezone with the last one seen.

        Returns True if a change was found and callbacks were run. A failed
        detection counts as no change.
        """
        try:
            detected = self.resolver.ambient_timezone()
        except Exception as e:
            logger.error(f"Error checking timezone change: {e}")
            return False

        if detected == self._current_timezone:
            return False

        old_timezone = self._current_timezone
        self._current_timezone = detected
        logger.info(f"Timezone change detected: {old_timezone} -> {detected}")

        for callback in list(self._callbacks):
            try:
                callback(detected, old_timezone)
            except Exception as e:
                logger.error(f"Error in timezone change callback: {e}")
        return True

    async def _poll(self) -> None:
        self.check_now()

    def _on_visibility_change(self, visible: bool) -> None:
        if visible:
            self.check_now()
