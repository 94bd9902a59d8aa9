"""Timezone detection and conversion built on zoneinfo.

Offsets follow one convention everywhere: local wall-clock minus UTC, in
minutes (Asia/Tokyo is +540, America/New_York in January is -300).

Naive datetimes passed in as instants are read as UTC. Naive datetimes
returned by ``to_local`` hold wall-clock fields for the requested zone and
keep ``fold`` so the repeated fall-back hour converts back correctly.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from radiofit.core.config import get_settings
from radiofit.core.exceptions import InvalidTimezoneError, TimezoneDetectionError
from radiofit.schemas.records import TimezoneInfo
from radiofit.services.errors import TimezoneErrorReporter

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "UTC"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def from_epoch_ms(ms: int | float) -> datetime:
    """Epoch milliseconds to an aware UTC datetime (exact, no float rounding)."""
    return EPOCH + timedelta(milliseconds=ms)


def to_epoch_ms(value: datetime) -> int:
    """Aware (or naive-as-UTC) datetime to epoch milliseconds."""
    return (as_instant(value) - EPOCH) // _ONE_MS


def as_instant(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def wall_clock_date(local_ms: int) -> str:
    """Calendar date of a wall-clock value stored as epoch-like milliseconds."""
    return from_epoch_ms(local_ms).date().isoformat()


def _zone_exists(name: str) -> bool:
    try:
        ZoneInfo(name)
        return True
    except Exception:
        return False


def _zone_from_localtime(path: Path = Path("/etc/localtime")) -> Optional[str]:
    """IANA name behind a zoneinfo symlink such as /etc/localtime."""
    try:
        target = path.resolve(strict=True)
    except OSError:
        return None
    parts = target.parts
    if "zoneinfo" not in parts:
        return None
    name = "/".join(parts[parts.index("zoneinfo") + 1:])
    # Some distributions nest zones under posix/ or right/
    for prefix in ("posix/", "right/"):
        if name.startswith(prefix):
            name = name[len(prefix):]
    return name or None


def _zone_from_file(path: Path = Path("/etc/timezone")) -> Optional[str]:
    try:
        return path.read_text().strip() or None
    except OSError:
        return None


def detect_system_timezone() -> str:
    """Resolve the ambient IANA timezone name.

    Order: configured override, the ``TZ`` environment variable, the
    /etc/localtime symlink, /etc/timezone. Read live on every call so a
    change of the host zone is picked up.
    """
    override = get_settings().timezone_override
    if override:
        return override

    tz_env = os.environ.get("TZ", "").lstrip(":")
    if tz_env and _zone_exists(tz_env):
        return tz_env

    name = _zone_from_localtime()
    if name and _zone_exists(name):
        return name

    name = _zone_from_file()
    if name and _zone_exists(name):
        return name

    raise TimezoneDetectionError("Could not determine the system timezone")


class TimezoneResolver:
    """Detects the ambient timezone and converts between UTC and wall-clock time.

    Public methods never raise for a bad timezone; failures go through the
    error reporter and a documented fallback is returned instead. The one
    exception is ``ambient_timezone``, which callers use when guessing is
    not acceptable.
    """

    def __init__(
        self,
        reporter: TimezoneErrorReporter,
        detector: Callable[[], str] = detect_system_timezone,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.reporter = reporter
        self._detector = detector
        self._clock = clock

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        return as_instant(self._clock()).astimezone(timezone.utc)

    @staticmethod
    def is_valid_timezone(tz_name: str | None) -> bool:
        if not tz_name or not isinstance(tz_name, str):
            return False
        return _zone_exists(tz_name)

    def _zone(self, tz_name: str) -> ZoneInfo:
        if not self.is_valid_timezone(tz_name):
            raise InvalidTimezoneError(tz_name)
        return ZoneInfo(tz_name)

    def ambient_timezone(self) -> str:
        """Detected timezone name. Raises TimezoneDetectionError on failure."""
        try:
            tz_name = self._detector()
        except TimezoneDetectionError:
            raise
        except Exception as e:
            raise TimezoneDetectionError(f"Timezone detection failed: {e}") from e

        if not self.is_valid_timezone(tz_name):
            raise TimezoneDetectionError(f"Detected timezone is not valid: {tz_name!r}")
        return tz_name

    def _offset(self, instant: datetime, zone: ZoneInfo) -> int:
        # Difference of wall-clock fields, evaluated at this very instant
        instant = as_instant(instant)
        local = instant.astimezone(zone).replace(tzinfo=None)
        utc = instant.astimezone(timezone.utc).replace(tzinfo=None)
        return round((local - utc).total_seconds() / 60)

    def _info(self, tz_name: str, instant: datetime) -> TimezoneInfo:
        zone = self._zone(tz_name)
        instant = as_instant(instant)
        return TimezoneInfo(
            timezone=tz_name,
            offset=self._offset(instant, zone),
            local_time=instant.astimezone(zone),
            utc_time=instant.astimezone(timezone.utc),
        )

    def current_info(self) -> TimezoneInfo:
        """Snapshot of the ambient timezone now, UTC if detection fails."""
        now = self.now()
        try:
            return self._info(self.ambient_timezone(), now)
        except Exception as e:
            return self.reporter.detection_failed(e, now)

    def info_for(self, tz_name: str, reference: Optional[datetime] = None) -> TimezoneInfo:
        """Snapshot of ``tz_name`` at ``reference`` (default now)."""
        instant = as_instant(reference) if reference is not None else self.now()
        fallback = TimezoneInfo(timezone=FALLBACK_TIMEZONE, offset=0, local_time=instant, utc_time=instant)

        if not self.is_valid_timezone(tz_name):
            self.reporter.invalid_timezone(tz_name, "timezone lookup")
            return fallback
        try:
            return self._info(tz_name, instant)
        except Exception as e:
            self.reporter.conversion_error("Timezone lookup", e)
            return fallback

    def offset_minutes(self, instant: datetime | int, tz_name: str) -> int:
        """UTC offset of ``tz_name`` at ``instant`` (datetime or epoch ms); 0 on failure."""
        try:
            if not isinstance(instant, datetime):
                instant = from_epoch_ms(instant)
            return self._offset(instant, self._zone(tz_name))
        except InvalidTimezoneError:
            self.reporter.invalid_timezone(tz_name, "offset calculation")
            return 0
        except Exception as e:
            self.reporter.conversion_error("Offset calculation", e)
            return 0

    def to_local(self, utc_ms: int, tz_name: Optional[str] = None) -> datetime:
        """Wall-clock time in ``tz_name`` (default ambient) for a UTC instant.

        Falls back to the UTC wall-clock of the same instant.
        """
        try:
            zone = self._zone(tz_name or self.ambient_timezone())
            return from_epoch_ms(utc_ms).astimezone(zone).replace(tzinfo=None)
        except Exception as e:
            self.reporter.conversion_error("UTC to local conversion", e)
            return from_epoch_ms(utc_ms).replace(tzinfo=None)

    def to_utc(self, local: datetime, tz_name: str) -> int:
        """Epoch milliseconds for wall-clock fields meant to be in ``tz_name``.

        Falls back to the input's own epoch value (naive read as UTC).
        """
        try:
            zone = self._zone(tz_name)
            return to_epoch_ms(local.replace(tzinfo=zone))
        except Exception as e:
            self.reporter.conversion_error("Local to UTC conversion", e)
            return to_epoch_ms(local)

    def format_local_date_string(self, value: datetime, tz_name: str) -> str:
        """``YYYY-MM-DD`` of ``value`` as seen in ``tz_name``; UTC date on failure."""
        instant = as_instant(value)
        if not self.is_valid_timezone(tz_name):
            self.reporter.invalid_timezone(tz_name, "date formatting")
            return instant.astimezone(timezone.utc).date().isoformat()
        try:
            return instant.astimezone(ZoneInfo(tz_name)).date().isoformat()
        except Exception as e:
            self.reporter.conversion_error("Date formatting", e)
            return instant.astimezone(timezone.utc).date().isoformat()

    def local_date_for_timestamp(self, utc_ms: int, tz_name: str) -> str:
        return self.format_local_date_string(from_epoch_ms(utc_ms), tz_name)
