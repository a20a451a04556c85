"""Source management and import flows."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from processor.errors import RecordNotFound
from processor.models import AbstractEvent, Event, ImportResult, Source, SourceAttributes
from processor.reference_resolver import ReferenceResolver
from processor.source_importer import SourceImporter
from scraper.errors import (
    DnsResolutionError,
    HostUnreachableError,
    HttpAuthenticationRequiredError,
    HttpError,
    NotFound,
)

logger = logging.getLogger(__name__)

MAXIMUM_EVENTS_IN_SUMMARY = 5

# Ordered most specific first
FETCH_ERROR_MESSAGES = (
    (NotFound, "No events found at remote site. Is the event identifier in the URL correct?"),
    (HttpAuthenticationRequiredError, "Couldn't import events, remote site requires authentication."),
    (DnsResolutionError, "Couldn't find IP address for remote site. Is the URL correct?"),
    (HostUnreachableError, "Couldn't connect to remote site."),
    (HttpError, "Couldn't download events, remote site may be experiencing connectivity problems."),
)


def describe_fetch_error(error: Exception) -> str:
    """Return a human-readable message for an import failure."""
    for error_class, message in FETCH_ERROR_MESSAGES:
        if isinstance(error, error_class):
            return message
    return f"Unknown error: {error}"


def to_sentence(items: List[str]) -> str:
    if not items:
        return ''
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} and {items[-1]}"


@dataclass
class ImportReport:
    """Outcome of an import request."""
    source: Source
    result: ImportResult = field(default_factory=ImportResult)
    max_events_in_summary: int = MAXIMUM_EVENTS_IN_SUMMARY

    @property
    def events(self) -> List[Event]:
        return self.result.events

    @property
    def status(self) -> str:
        if self.source.errors:
            return 'failed'
        if not self.events:
            return 'empty'
        return 'imported'

    @property
    def message(self) -> str:
        status = self.status
        if status == 'failed':
            return f"Unable to import: {to_sentence(self.source.full_messages())}"
        if status == 'empty':
            return "Unable to find any upcoming events to import from this source"
        return f"Imported {len(self.events)} entries"

    def preview(self) -> List[str]:
        """Titles of the first few created events, then a count of the rest."""
        lines = []
        for i, event in enumerate(self.events):
            if i >= self.max_events_in_summary:
                lines.append(f"And {len(self.events) - i} other events.")
                break
            lines.append(event.title)
        return lines


@dataclass
class SourceDetails:
    """A source with its upcoming and past events."""
    source: Source
    future_events: List[Event]
    past_events: List[Event]


class SourceService:
    """Entry points for creating, updating and importing sources."""

    def __init__(
        self,
        store,
        fetcher,
        resolver: Optional[ReferenceResolver] = None,
        importer_factory: Callable[..., SourceImporter] = SourceImporter,
        max_events_in_summary: int = MAXIMUM_EVENTS_IN_SUMMARY
    ):
        """
        Initialize the service.

        Args:
            store: Storage manager
            fetcher: UpstreamFetcher handed to importers
            resolver: ReferenceResolver for topic and type references
            importer_factory: Callable building a SourceImporter
            max_events_in_summary: Number of event titles shown in import previews
        """
        self.store = store
        self.fetcher = fetcher
        self.resolver = resolver or ReferenceResolver(store)
        self.importer_factory = importer_factory
        self.max_events_in_summary = max_events_in_summary

    def find_or_create_from(self, attributes: Optional[SourceAttributes] = None) -> Source:
        """
        Find the source for the given URL, or create it.

        Args:
            attributes: Source attributes; only url and reimport are used

        Returns:
            New unsaved Source without a URL, otherwise the persisted Source
        """
        if attributes is None or not attributes.url or not attributes.url.strip():
            return Source()

        source = self.store.find_or_create_source_by_url(attributes.url)
        if attributes.reimport and not source.is_new_record:
            source.reimport = True
            self.store.save_source(source)
        return source

    def import_source(
        self,
        attributes: SourceAttributes,
        organization_id: Optional[str] = None,
        range_start: Optional[datetime] = None
    ) -> ImportReport:
        """
        Find or create a source and import its upcoming events.

        Fetch failures are recorded as base errors on the source.

        Args:
            attributes: Source attributes from the request
            organization_id: Organization owning the source
            range_start: Lower bound for imported event start times

        Returns:
            ImportReport describing the outcome
        """
        self._resolve_taxonomy(attributes)

        source = self.find_or_create_from(attributes)
        source.assign(attributes)
        if organization_id is not None:
            source.organization_id = organization_id

        report = ImportReport(source=source, max_events_in_summary=self.max_events_in_summary)
        if not source.is_valid():
            logger.warning(f"Not importing invalid source: {source.full_messages()}")
            return report

        self.store.save_source(source)

        importer = None
        try:
            importer = self.importer_factory(
                source, self.fetcher, self.store, range_start=range_start
            )
            importer.fetch_upstream()
            if not source.reimport:
                importer.discard_captured()
            report.result = importer.import_events()
        except Exception as e:
            message = describe_fetch_error(e)
            logger.error(
                f"Import of source {source.id} failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            source.add_error('base', message)
            if importer is not None:
                # Events saved before the failure stay stored and are reported
                report.result = importer.result

        return report

    def create(self, attributes: SourceAttributes) -> Source:
        """
        Create a source.

        Returns:
            The source, saved if valid; its errors describe any failure
        """
        self._resolve_taxonomy(attributes)

        source = Source()
        source.assign(attributes)
        if source.is_valid():
            self.store.save_source(source)
        return source

    def update(self, source_id: str, attributes: SourceAttributes) -> Source:
        """
        Update a source.

        Raises:
            RecordNotFound: If no source has the given id
        """
        source = self._find(source_id)
        self._resolve_taxonomy(attributes)

        source.assign(attributes)
        if source.is_valid():
            self.store.save_source(source)
        return source

    def list_sources(
        self,
        organization_id: Optional[str] = None,
        enabled: Optional[bool] = None
    ) -> List[Source]:
        """Sources of an organization, or all of them, optionally by enabled state."""
        return self.store.list_sources(organization_id=organization_id, enabled=enabled)

    def show(self, source_id: str, limit: int = 10) -> SourceDetails:
        """Return a source with its next and most recent events."""
        source = self._find(source_id)
        now = datetime.now(timezone.utc)
        return SourceDetails(
            source=source,
            future_events=self.store.get_future_events(source.id, now=now, limit=limit),
            past_events=self.store.get_past_events(source.id, now=now, limit=limit)
        )

    def destroy(self, source_id: str) -> None:
        self._find(source_id)
        self.store.delete_source(source_id)

    def quarantined(self, source_id: Optional[str] = None) -> List[AbstractEvent]:
        """Abstract events that failed validation and await review."""
        return self.store.get_abstract_events(source_id=source_id, valid=False)

    def _find(self, source_id: str) -> Source:
        source = self.store.get_source(source_id)
        if source is None:
            raise RecordNotFound(f"Couldn't find Source with id={source_id}")
        return source

    def _resolve_taxonomy(self, attributes: SourceAttributes) -> None:
        if attributes.topic_ids is not None:
            attributes.topic_ids = self.resolver.resolve_or_create(attributes.topic_ids, 'topic')
        if attributes.type_ids is not None:
            attributes.type_ids = self.resolver.resolve_or_create(attributes.type_ids, 'type')
