"""Failure kinds raised while fetching events from an upstream source."""
from typing import Optional


class FetchError(Exception):
    """Base class for all upstream fetch failures."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class NotFound(FetchError):
    """No events could be found at the upstream URL."""


class HttpAuthenticationRequiredError(FetchError):
    """The upstream site requires credentials we don't have."""


class TransportError(FetchError):
    """Network level failure while talking to the upstream site."""


class HttpError(TransportError):
    """The upstream site answered with an HTTP error or timed out."""

    def __init__(self, message: str = '', url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url=url)
        self.status_code = status_code


class HostUnreachableError(TransportError):
    """The upstream host could not be reached."""


class DnsResolutionError(TransportError):
    """The upstream host name could not be resolved."""


class UnknownFetchError(FetchError):
    """Any other failure raised while downloading upstream content."""
