from __future__ import annotations


class RosterSyncError(Exception):
    """Base class for every error raised by the roster sync core."""


class NotFoundError(RosterSyncError, LookupError):
    """A race or user lookup missed. Recoverable: the item is skipped."""


class MalformedInputError(RosterSyncError, ValueError):
    """External input does not match the expected schema. Fatal to the run."""


class MissingFieldError(MalformedInputError):
    """A form response or form layout lacks a required answer or question."""


class UnknownActionError(MalformedInputError):
    """A form response carries an action other than signup/cancel."""


class ConfigError(RosterSyncError, ValueError):
    """The program configuration is missing or invalid."""


class ExternalServiceError(RosterSyncError, RuntimeError):
    """A Google API request failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StoreError(RosterSyncError, RuntimeError):
    """The roster store could not be read or written."""
