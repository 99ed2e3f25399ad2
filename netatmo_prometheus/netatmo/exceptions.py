"""Exceptions raised by the Netatmo client library."""

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .oauth import Token


class NetatmoError(Exception):
    """Base class for all Netatmo errors."""


class ConfigReadError(NetatmoError):
    """Credential file is missing, unreadable or malformed."""

    def __init__(self, message: str, path: Union[str, Path, None] = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigWriteError(NetatmoError):
    """Credential file could not be created or written."""

    def __init__(self, message: str, path: Union[str, Path, None] = None) -> None:
        super().__init__(message)
        self.path = path


class RefreshError(NetatmoError):
    """The refresh grant exchange failed; the held token is unchanged."""


class PersistError(NetatmoError):
    """
    A token was refreshed but could not be persisted.

    The freshly issued token is available as ``token`` so the caller can
    decide to carry on with it, at the risk of losing it on restart.
    """

    def __init__(self, message: str, token: Optional['Token'] = None) -> None:
        super().__init__(message)
        self.token = token


class TransportError(NetatmoError):
    """Request to the Netatmo API could not be completed."""

    def __init__(self, message: str, endpoint: str = '') -> None:
        super().__init__(message)
        self.endpoint = endpoint


class APIStatusError(NetatmoError):
    """Netatmo API answered with a non-success HTTP status."""

    def __init__(self, status_code: int, endpoint: str = '', reason: str = '') -> None:
        super().__init__(f'Bad HTTP status {status_code} from {endpoint}')
        self.status_code = status_code
        self.endpoint = endpoint
        self.reason = reason


class DecodeError(NetatmoError):
    """Response body does not match the expected schema."""

    def __init__(self, message: str, endpoint: str = '') -> None:
        super().__init__(message)
        self.endpoint = endpoint


class MissingTimestampError(DecodeError):
    """Device carries no ``time_utc`` in its dashboard data."""
