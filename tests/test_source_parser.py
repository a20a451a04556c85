"""Unit tests for SourceParser download and dispatch."""
import socket
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import requests
import responses

from processor.models import AbstractEvent
from scraper.errors import (
    DnsResolutionError,
    HostUnreachableError,
    HttpAuthenticationRequiredError,
    HttpError,
    NotFound,
    UnknownFetchError,
)
from scraper.source_parser import Parser, SourceParser

URL = 'http://calendar.example.com/events'


class LineParser(Parser):
    """Parses 'EVENT <title>' lines."""

    def to_abstract_events(self, url, content):
        return [
            AbstractEvent(
                title=line[len('EVENT '):],
                url=url,
                start_time=datetime(2030, 1, 1, tzinfo=timezone.utc)
            )
            for line in content.splitlines()
            if line.startswith('EVENT ')
        ]


class NothingParser(Parser):
    """Never recognizes content."""

    def to_abstract_events(self, url, content):
        return []


class TestSourceParser:
    """Test cases for SourceParser class."""

    @responses.activate
    def test_to_abstract_events_uses_first_matching_parser(self):
        responses.add(responses.GET, URL, body="EVENT Concert\nEVENT Lecture", status=200)

        source_parser = SourceParser(timeout=5, parsers=[NothingParser, LineParser])
        events = source_parser.to_abstract_events(URL)

        assert [event.title for event in events] == ['Concert', 'Lecture']
        assert events[0].url == URL

    @responses.activate
    def test_to_abstract_events_raises_not_found_when_no_parser_matches(self):
        responses.add(responses.GET, URL, body="<html></html>", status=200)

        source_parser = SourceParser(parsers=[NothingParser])

        with pytest.raises(NotFound) as excinfo:
            source_parser.to_abstract_events(URL)
        assert excinfo.value.url == URL

    def test_register_adds_parser_once(self):
        original = list(SourceParser.parsers)
        try:
            SourceParser.register(LineParser)
            SourceParser.register(LineParser)
            assert SourceParser.parsers.count(LineParser) == 1
            assert LineParser in SourceParser()._parsers
        finally:
            SourceParser.parsers[:] = original

    @responses.activate
    @pytest.mark.parametrize('status', [401, 403])
    def test_read_url_authentication_required(self, status):
        responses.add(responses.GET, URL, status=status)

        with pytest.raises(HttpAuthenticationRequiredError):
            SourceParser().read_url(URL)

    @responses.activate
    @pytest.mark.parametrize('status', [404, 410])
    def test_read_url_not_found(self, status):
        responses.add(responses.GET, URL, status=status)

        with pytest.raises(NotFound):
            SourceParser().read_url(URL)

    @responses.activate
    def test_read_url_server_error(self):
        responses.add(responses.GET, URL, body="Server Error", status=500)

        with pytest.raises(HttpError) as excinfo:
            SourceParser().read_url(URL)
        assert excinfo.value.status_code == 500
        # No retries at this layer
        assert len(responses.calls) == 1

    @responses.activate
    def test_read_url_timeout_is_http_error(self):
        responses.add(responses.GET, URL, body=requests.exceptions.ReadTimeout("timed out"))

        with pytest.raises(HttpError) as excinfo:
            SourceParser().read_url(URL)
        assert excinfo.value.status_code is None
        assert excinfo.value.url == URL

    @responses.activate
    def test_read_url_connection_refused(self):
        responses.add(
            responses.GET, URL,
            body=requests.exceptions.ConnectionError("Connection refused")
        )

        with pytest.raises(HostUnreachableError):
            SourceParser().read_url(URL)

    @responses.activate
    def test_read_url_dns_failure(self):
        responses.add(
            responses.GET, URL,
            body=requests.exceptions.ConnectionError(
                socket.gaierror(-2, 'Name or service not known')
            )
        )

        with pytest.raises(DnsResolutionError):
            SourceParser().read_url(URL)

    def test_read_url_other_request_failure(self):
        with patch('scraper.source_parser.requests.get',
                   side_effect=requests.exceptions.InvalidURL('bad url')):
            with pytest.raises(UnknownFetchError, match='bad url'):
                SourceParser().read_url(URL)
