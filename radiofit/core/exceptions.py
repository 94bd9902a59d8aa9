"""Exceptions raised by the record and timezone services."""


class RadioFitError(Exception):
    """Base class for application errors."""


class TimezoneDetectionError(RadioFitError):
    """The ambient timezone could not be determined."""


class InvalidTimezoneError(RadioFitError):
    """A timezone identifier is not a known IANA zone."""

    def __init__(self, timezone: str):
        super().__init__(f"Invalid timezone: {timezone}")
        self.timezone = timezone


class RecordWriteError(RadioFitError):
    """An exercise record could not be persisted."""
