"""Imports a source's upstream events into the event store."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from processor.errors import RecordInvalid
from processor.event_processor import EventProcessor
from processor.models import (
    AbstractEvent,
    AbstractLocation,
    Event,
    ImportResult,
    Source,
    Venue,
    as_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_RANGE_START_OFFSET = timedelta(hours=1)


class SourceImporter:
    """Fetches a source's upstream events once and imports them."""

    def __init__(
        self,
        source: Source,
        fetcher,
        store,
        processor: Optional[EventProcessor] = None,
        range_start: Optional[datetime] = None
    ):
        """
        Initialize the importer.

        Args:
            source: Source to import from
            fetcher: UpstreamFetcher used to get abstract events
            store: Storage manager for events and abstract events
            processor: EventProcessor used for conversion
            range_start: Events starting before this are ignored,
                defaults to one hour from now
        """
        self.source = source
        self.fetcher = fetcher
        self.store = store
        self.processor = processor or EventProcessor()
        if range_start is None:
            range_start = datetime.now(timezone.utc) + DEFAULT_RANGE_START_OFFSET
        self.range_start = as_utc(range_start)

        self.fetched = False
        self.abstract_events: List[AbstractEvent] = []
        self.abstract_locations: List[AbstractLocation] = []
        self.result = ImportResult()

    def original_events(self) -> List[Event]:
        """Non-duplicate events already stored for the source within range."""
        if self.source.id is None:
            return []
        return self.store.get_events_for_source(
            self.source.id,
            since=self.range_start,
            non_duplicates=True
        )

    def fetch_upstream(self) -> List[AbstractEvent]:
        """
        Fetch abstract events from upstream, only once per importer.

        Returns:
            Fetched abstract events
        """
        if self.fetched:
            return self.abstract_events

        abstract_events = self.fetcher.fetch(self.source, self.range_start)
        abstract_locations = [
            abstract_event.abstract_location
            for abstract_event in abstract_events
            if abstract_event.abstract_location is not None
        ]

        self.abstract_events = abstract_events
        self.abstract_locations = abstract_locations
        self.fetched = True

        logger.info(
            f"Fetched {len(abstract_events)} abstract events and "
            f"{len(abstract_locations)} abstract locations for source {self.source.id}"
        )
        return self.abstract_events

    def discard_captured(self) -> int:
        """
        Drop fetched abstract events that match an already stored event.

        An abstract event matches when it has the same URL, or the same
        title and start time, as one of the original events.

        Returns:
            Number of abstract events dropped
        """
        if not self.fetched:
            self.fetch_upstream()

        originals = self.original_events()
        urls = {event.url for event in originals if event.url}
        keys = {(event.title, event.start_time) for event in originals}

        kept = []
        for abstract_event in self.abstract_events:
            if abstract_event.url and abstract_event.url in urls:
                continue
            if (abstract_event.title, abstract_event.start_time) in keys:
                continue
            kept.append(abstract_event)

        dropped = len(self.abstract_events) - len(kept)
        self.abstract_events = kept
        self.abstract_locations = [
            abstract_event.abstract_location
            for abstract_event in kept
            if abstract_event.abstract_location is not None
        ]
        if dropped:
            logger.info(f"Skipping {dropped} already imported events for source {self.source.id}")
        return dropped

    def import_events(self) -> ImportResult:
        """
        Convert fetched abstract events to events and persist them.

        Valid conversions are saved as events. Invalid records are saved as
        invalid abstract events for later review and do not stop the import.
        Progress is kept on self.result, so a storage failure part way
        through still leaves an accurate count of what was saved.

        Returns:
            ImportResult with created events and quarantined records
        """
        if not self.fetched:
            self.fetch_upstream()

        result = self.result = ImportResult()
        venues: Dict[int, Venue] = {}

        for abstract_event in self.abstract_events:
            errors = self.processor.validate_abstract_event(abstract_event)
            if errors:
                self._quarantine(abstract_event, errors)
                result.quarantined.append(abstract_event)
                continue

            try:
                venue = self._venue_for(abstract_event.abstract_location, venues)
                event = self.processor.to_event(
                    abstract_event,
                    source_id=self.source.id,
                    organization_id=self.source.organization_id,
                    topic_ids=self.source.topic_ids,
                    type_ids=self.source.type_ids,
                    venue_id=venue.id if venue else None
                )
                self.processor.validate_event(event)
            except RecordInvalid as e:
                self._quarantine(abstract_event, e.errors)
                result.quarantined.append(abstract_event)
                continue

            self.store.save_event(event)
            result.events.append(event)
            abstract_event.valid = True
            abstract_event.errors = []
            abstract_event.event_id = event.id
            self.store.save_abstract_event(abstract_event)

        logger.info(
            f"Imported {result.created_count} events for source {self.source.id}, "
            f"quarantined {result.quarantined_count}"
        )
        return result

    def _quarantine(self, abstract_event: AbstractEvent, errors: List[str]) -> None:
        abstract_event.valid = False
        abstract_event.errors = list(errors)
        if abstract_event.source_id is None:
            abstract_event.source_id = self.source.id
        self.store.save_abstract_event(abstract_event)
        logger.warning(
            f"Quarantined abstract event '{abstract_event.title}' "
            f"from source {self.source.id}: {', '.join(errors)}"
        )

    def _venue_for(self, location: Optional[AbstractLocation], venues: Dict[int, Venue]) -> Optional[Venue]:
        if location is None or not location.title:
            return None
        if id(location) not in venues:
            venues[id(location)] = self.store.find_or_create_venue(Venue(
                title=location.title,
                address=location.address,
                url=location.url,
                source_id=self.source.id
            ))
        return venues[id(location)]
