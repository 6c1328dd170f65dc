"""Error taxonomy shared by the session and lookup clients."""

from __future__ import annotations

import enum

import httpx

__all__ = [
    "ErrorClass",
    "IntegrationError",
    "ConfigurationError",
    "AuthError",
    "ProtocolError",
    "TransientNetworkError",
    "UpstreamError",
    "FatalUpstreamError",
    "NotFoundError",
    "TRANSIENT_STATUS_CODES",
    "classify",
    "classify_status",
]

TRANSIENT_STATUS_CODES = frozenset({429, 503})


class ErrorClass(enum.Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"


class IntegrationError(Exception):
    """Base class for every failure raised by this package."""


class ConfigurationError(IntegrationError):
    """Required setup (URL, credentials, client id) is missing or invalid."""


class UpstreamError(IntegrationError):
    """An upstream answered, but not with something usable."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthError(UpstreamError):
    """The login endpoint rejected the configured credentials."""


class ProtocolError(UpstreamError):
    """A response is missing an expected field or has an unknown shape."""


class FatalUpstreamError(UpstreamError):
    """Non-2xx answer that must not be retried."""


class TransientNetworkError(IntegrationError):
    """Network fault or throttling answer worth retrying."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(IntegrationError):
    """A lookup produced nothing and no fallback was available."""


def classify_status(status_code: int) -> ErrorClass:
    if status_code in TRANSIENT_STATUS_CODES:
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def classify(exc: BaseException) -> ErrorClass:
    """Decide whether a failed attempt is worth another try.

    Timeouts, connection resets/aborts, DNS failures and throttling statuses
    are transient. Everything else, including malformed payloads and
    configuration problems, is fatal.
    """
    if isinstance(exc, TransientNetworkError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return ErrorClass.TRANSIENT
    if isinstance(exc, httpx.RemoteProtocolError):
        # Peer dropped the connection mid-response.
        return ErrorClass.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code)
    return ErrorClass.FATAL
