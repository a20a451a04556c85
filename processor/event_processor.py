"""Event processor for validating abstract events and converting them to events."""
import logging
from typing import List, Optional

from processor.errors import RecordInvalid
from processor.models import AbstractEvent, Event, Source

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor for validating and converting abstract events."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000

    def validate_abstract_event(self, abstract_event: AbstractEvent) -> List[str]:
        """
        Validate that an abstract event can become an event.

        Args:
            abstract_event: AbstractEvent to validate

        Returns:
            List of error messages, empty if valid
        """
        errors = []

        if not abstract_event.title or not abstract_event.title.strip():
            errors.append("Title can't be blank")

        if abstract_event.start_time is None:
            errors.append("Start time can't be blank")
        elif abstract_event.end_time is not None and abstract_event.end_time < abstract_event.start_time:
            errors.append("End time cannot be before start time")

        if errors:
            logger.warning(
                f"Abstract event '{abstract_event.title}' is invalid: {', '.join(errors)}"
            )
        return errors

    def to_event(
        self,
        abstract_event: AbstractEvent,
        source_id: Optional[str],
        organization_id: Optional[str] = None,
        topic_ids: Optional[List[str]] = None,
        type_ids: Optional[List[str]] = None,
        venue_id: Optional[str] = None
    ) -> Event:
        """
        Convert an abstract event to an event.

        Args:
            abstract_event: Abstract event to convert
            source_id: Id of the owning source
            organization_id: Organization the event belongs to
            topic_ids: Topics copied onto the event
            type_ids: Types copied onto the event
            venue_id: Id of the venue resolved for the event

        Returns:
            Unsaved Event object
        """
        title = abstract_event.title.strip() if abstract_event.title else abstract_event.title
        description = abstract_event.description

        if title:
            title = title[:self.MAX_TITLE_LENGTH]
        if description:
            description = description[:self.MAX_DESCRIPTION_LENGTH]

        return Event(
            title=title,
            description=description,
            url=abstract_event.url,
            start_time=abstract_event.start_time,
            end_time=abstract_event.end_time,
            venue_id=venue_id,
            source_id=source_id,
            organization_id=organization_id,
            topic_ids=list(topic_ids or []),
            type_ids=list(type_ids or [])
        )

    def validate_event(self, event: Event) -> None:
        """
        Strictly validate an event.

        Raises:
            RecordInvalid: If the event is missing required fields
        """
        errors = []
        if not event.title:
            errors.append("Title can't be blank")
        if event.start_time is None:
            errors.append("Start time can't be blank")
        elif event.end_time is not None and event.end_time < event.start_time:
            errors.append("End time cannot be before start time")
        if not event.source_id:
            errors.append("Source can't be blank")

        if errors:
            raise RecordInvalid(errors)

    def to_events(self, source: Source, abstract_events: List[AbstractEvent]) -> List[Event]:
        """
        Convert a source's abstract events, copying its taxonomy and organization.

        Args:
            source: Source the events belong to
            abstract_events: Abstract events fetched for the source

        Returns:
            List of unsaved Event objects

        Raises:
            RecordInvalid: If the source itself is invalid
        """
        if not source.is_valid():
            raise RecordInvalid(source.full_messages())

        return [
            self.to_event(
                abstract_event,
                source_id=source.id,
                organization_id=source.organization_id,
                topic_ids=source.topic_ids,
                type_ids=source.type_ids,
                venue_id=None
            )
            for abstract_event in abstract_events
        ]

    def create_events(self, source: Source, abstract_events: List[AbstractEvent], store) -> List[Event]:
        """
        Convert and persist a source's abstract events.

        Every event is validated strictly before saving.

        Args:
            source: Persisted source the events belong to
            abstract_events: Abstract events fetched for the source
            store: Storage manager used to save events

        Returns:
            List of saved Event objects

        Raises:
            RecordInvalid: If the source or any converted event is invalid
        """
        events = self.to_events(source, abstract_events)
        for event in events:
            self.validate_event(event)
        for event in events:
            store.save_event(event)

        logger.info(f"Created {len(events)} events for source {source.id}")
        return events
