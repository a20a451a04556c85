"""Pluggable registry of parsers that turn upstream content into abstract events."""
import logging
import socket
from abc import ABC, abstractmethod
from typing import List, Optional, Type

import requests

from processor.models import AbstractEvent
from scraper.errors import (
    DnsResolutionError,
    FetchError,
    HostUnreachableError,
    HttpAuthenticationRequiredError,
    HttpError,
    NotFound,
    UnknownFetchError,
)

logger = logging.getLogger(__name__)

_DNS_FAILURE_MARKERS = (
    'Name or service not known',
    'nodename nor servname provided',
    'getaddrinfo failed',
    'Temporary failure in name resolution',
    'Failed to resolve',
    'NameResolutionError',
)


class Parser(ABC):
    """Base class for upstream format parsers."""

    def __init__(self, source_parser: 'SourceParser'):
        self.source_parser = source_parser

    @abstractmethod
    def to_abstract_events(self, url: str, content: str) -> List[AbstractEvent]:
        """
        Extract abstract events from downloaded content.

        Returns an empty list when the content is not in this parser's format.
        """


class SourceParser:
    """Downloads upstream content and dispatches it to registered parsers."""

    parsers: List[Type[Parser]] = []

    def __init__(self, timeout: int = 30, parsers: Optional[List[Type[Parser]]] = None):
        """
        Initialize the source parser.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            parsers: Parser classes to try, defaults to the registered ones
        """
        self.timeout = timeout
        self._parsers = list(parsers if parsers is not None else self.parsers)

    @classmethod
    def register(cls, parser_class: Type[Parser]) -> Type[Parser]:
        """Register a parser class; usable as a class decorator."""
        if parser_class not in cls.parsers:
            cls.parsers.append(parser_class)
        return parser_class

    def to_abstract_events(self, url: str) -> List[AbstractEvent]:
        """
        Fetch and parse the events published at url.

        Args:
            url: Upstream URL

        Returns:
            Abstract events from the first parser that recognizes the content

        Raises:
            FetchError: One of its subclasses, depending on the failure
        """
        content = self.read_url(url)

        for parser_class in self._parsers:
            parser = parser_class(self)
            events = parser.to_abstract_events(url, content)
            if events:
                logger.info(
                    f"{parser_class.__name__} extracted {len(events)} events from {url}"
                )
                return list(events)

        raise NotFound(f"No events found at {url}", url=url)

    def read_url(self, url: str) -> str:
        """
        Download url and classify any failure.

        Args:
            url: URL to download

        Returns:
            Response body as text
        """
        logger.info(f"Downloading {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.text

        except requests.HTTPError as e:
            raise self._classify_http_error(url, e) from e
        except requests.Timeout as e:
            raise HttpError(f"Timed out downloading {url}: {e}", url=url) from e
        except requests.ConnectionError as e:
            if _is_dns_failure(e):
                raise DnsResolutionError(
                    f"Couldn't resolve host for {url}: {e}", url=url
                ) from e
            raise HostUnreachableError(f"Couldn't connect to {url}: {e}", url=url) from e
        except requests.RequestException as e:
            raise UnknownFetchError(str(e), url=url) from e

    def _classify_http_error(self, url: str, error: requests.HTTPError) -> FetchError:
        status = error.response.status_code if error.response is not None else None
        logger.warning(f"HTTP {status} downloading {url}")

        if status in (401, 403):
            return HttpAuthenticationRequiredError(
                f"HTTP {status} downloading {url}", url=url
            )
        if status in (404, 410):
            return NotFound(f"HTTP {status} downloading {url}", url=url)
        return HttpError(f"HTTP {status} downloading {url}", url=url, status_code=status)


def _is_dns_failure(error: BaseException) -> bool:
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, socket.gaierror):
            return True
        if type(current).__name__ == 'NameResolutionError':
            return True
        if any(marker in str(current) for marker in _DNS_FAILURE_MARKERS):
            return True

        pending.append(getattr(current, 'reason', None))
        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.extend(arg for arg in getattr(current, 'args', ()) if isinstance(arg, BaseException))

    return False
