"""Error taxonomy for back-office communication."""

from typing import Any

from shared.constants import CONFIG_MISSING_MESSAGE, UNKNOWN_ERROR


class BackOfficeError(Exception):
    """Base class for every back-office sync failure."""


class ConfigMissing(BackOfficeError):
    """The API base URL or API key is not configured."""

    def __init__(self, message: str = CONFIG_MISSING_MESSAGE):
        super().__init__(message)


class TransportFailure(BackOfficeError):
    """Network, DNS or timeout failure while talking to the back office."""


class RemoteRejection(BackOfficeError):
    """The back office answered, but not with a success."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ):
        self.status_code = status_code
        self.message = message or UNKNOWN_ERROR
        self.errors = errors or {}
        super().__init__(f"HTTP {status_code} - {self.message}")

    @classmethod
    def from_body(cls, status_code: int, data: Any) -> "RemoteRejection":
        """Build a rejection from a decoded response body (which may not be a dict)."""
        if not isinstance(data, dict):
            return cls(status_code)
        errors = data.get("errors")
        if not isinstance(errors, dict):
            errors = None
        message = data.get("message")
        return cls(status_code, str(message) if message else None, errors)


class LocalPreconditionFailure(BackOfficeError):
    """A local record needed for the call is missing or incomplete."""
