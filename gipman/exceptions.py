"""Custom exceptions.

Request-path errors (`RequestError` subclasses) carry the HTTP status they map to and
are turned into `{code, message}` responses. `DownloadError` and `ConfigurationError`
belong to the database lifecycle and process startup.
"""
from http import HTTPStatus
from pathlib import Path


class GipmanError(Exception):
    """Base class for all gipman errors."""


class RequestError(GipmanError):
    """Base class for errors surfaced to a single lookup request."""

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        """Initialize the exception with the client facing message.

        Args:
            message: The message returned to the client.
        """
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, int | str]:
        """Return the machine-readable `{code, message}` pair for this error."""
        return {'code': int(self.status_code), 'message': self.message}


class InvalidRequestError(RequestError):
    """Raised when the client sent an unusable lookup request."""

    status_code = HTTPStatus.BAD_REQUEST


class IndexUnavailableError(RequestError):
    """Raised when no geolocation index has been built yet."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self) -> None:
        """Initialize the exception with a default message."""
        super().__init__('geolocation database is not loaded yet')


class LookupFailedError(RequestError):
    """Raised when the source IP cannot be resolved against the current index."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, ip: str, reason: str) -> None:
        """Initialize the exception with the failing IP.

        Args:
            ip: The IP address that could not be resolved.
            reason: Short description of the underlying failure.
        """
        super().__init__(f'error looking up IP "{ip}": {reason}')
        self.ip = ip


class DownloadError(GipmanError):
    """Raised when fetching or persisting a database edition fails."""

    def __init__(self, edition_id: str, reason: str) -> None:
        """Initialize the exception with the failing edition.

        Args:
            edition_id: The database edition being downloaded.
            reason: What went wrong.
        """
        super().__init__(f'error while getting database for {edition_id}: {reason}')
        self.edition_id = edition_id


class IndexBuildError(GipmanError):
    """Raised when a local database file cannot be turned into a lookup index."""

    def __init__(self, database_path: Path, reason: str) -> None:
        """Initialize the exception with the unreadable database.

        Args:
            database_path: The database file that failed to open.
            reason: What went wrong.
        """
        super().__init__(f'error opening database {database_path}: {reason}')
        self.database_path = database_path


class ConfigurationError(GipmanError):
    """Raised when there's an issue with configuration or settings."""

    def __init__(self, message: str) -> None:
        """Initialize the exception with the configuration message.

        Args:
            message: The configuration error details.
        """
        super().__init__(message)
