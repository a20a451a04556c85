"""Fetches abstract events for a source within a time window."""
import logging
from datetime import datetime
from typing import List, Optional

from processor.models import AbstractEvent, Source, as_utc
from scraper.source_parser import SourceParser

logger = logging.getLogger(__name__)


class UpstreamFetcher:
    """Fetcher for abstract events published by a source."""

    def __init__(self, source_parser: Optional[SourceParser] = None, timeout: int = 30):
        """
        Initialize the fetcher.

        Args:
            source_parser: Parser registry to delegate extraction to
            timeout: HTTP request timeout in seconds, used when no parser is given
        """
        self.source_parser = source_parser or SourceParser(timeout=timeout)

    def fetch(self, source: Source, window_start: datetime) -> List[AbstractEvent]:
        """
        Fetch the source's abstract events starting at or after window_start.

        Events without a start time are kept so they can be quarantined.
        Every returned event, and its location, is tagged with the source.

        Args:
            source: Source to fetch from, must have a URL
            window_start: Lower bound (inclusive) for event start times

        Returns:
            List of AbstractEvent objects

        Raises:
            ValueError: If the source has no URL
            FetchError: If the upstream fetch fails
        """
        if not source.url:
            raise ValueError("Cannot fetch events for a source without a URL")

        window_start = as_utc(window_start)
        logger.info(f"Fetching events from {source.url} starting {window_start.isoformat()}")

        fetched = self.source_parser.to_abstract_events(source.url)
        events = []
        for abstract_event in fetched:
            abstract_event.start_time = as_utc(abstract_event.start_time)
            abstract_event.end_time = as_utc(abstract_event.end_time)
            if abstract_event.start_time is not None and abstract_event.start_time < window_start:
                continue

            self._tag(abstract_event, source)
            events.append(abstract_event)

        logger.info(
            f"Kept {len(events)} of {len(fetched)} events from {source.url} within window"
        )
        return events

    def _tag(self, abstract_event: AbstractEvent, source: Source) -> None:
        abstract_event.source = source
        abstract_event.source_id = source.id
        location = abstract_event.abstract_location
        if location is not None:
            location.source = source
            location.source_id = source.id
