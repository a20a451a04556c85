"""DynamoDB manager for source, event and taxonomy storage."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from processor.models import (
    AbstractEvent,
    AbstractLocation,
    Event,
    Source,
    TaxonomyTerm,
    Venue,
    as_utc,
)

logger = logging.getLogger(__name__)

TABLE_SUFFIXES = {
    'sources': 'sources',
    'events': 'events',
    'abstract_events': 'abstract-events',
    'venues': 'venues',
    'topic': 'topics',
    'type': 'types',
}

TAXONOMY_KINDS = ('topic', 'type')


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize datetimes as UTC with fixed precision so they sort lexically."""
    if value is None:
        return None
    return as_utc(value).isoformat(timespec='microseconds')


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return as_utc(datetime.fromisoformat(value))


def _compact(item: dict) -> dict:
    """Drop attributes without a value."""
    return {key: value for key, value in item.items() if value is not None}


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    def __init__(self, table_prefix: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table references.

        Args:
            table_prefix: Prefix shared by all table names
            region_name: AWS region, defaults to the environment's
        """
        self.table_prefix = table_prefix
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table_names = {
            key: f"{table_prefix}-{suffix}" for key, suffix in TABLE_SUFFIXES.items()
        }
        self.tables = {
            key: self.dynamodb.Table(name) for key, name in self.table_names.items()
        }
        logger.info(f"Initialized DynamoDBManager with table prefix: {table_prefix}")

    def create_tables(self) -> None:
        """Create all tables with on-demand billing, keyed by 'id'."""
        for name in self.table_names.values():
            logger.info(f"Creating table {name}")
            table = self.dynamodb.create_table(
                TableName=name,
                KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
                AttributeDefinitions=[{'AttributeName': 'id', 'AttributeType': 'S'}],
                BillingMode='PAY_PER_REQUEST'
            )
            table.wait_until_exists()

    def _scan(self, key: str, filter_expression=None) -> List[dict]:
        """
        Scan a table, following pagination.

        Args:
            key: Table key in self.tables
            filter_expression: Optional boto3 condition

        Returns:
            List of raw items
        """
        table = self.tables[key]
        kwargs = {'ConsistentRead': True}
        if filter_expression is not None:
            kwargs['FilterExpression'] = filter_expression

        try:
            response = table.scan(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))

            return items

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table {table.name}: {e}")
            raise

    def _get(self, key: str, record_id: str) -> Optional[dict]:
        table = self.tables[key]
        try:
            return table.get_item(Key={'id': record_id}, ConsistentRead=True).get('Item')
        except ClientError as e:
            logger.error(f"Error reading {record_id} from {table.name}: {e}")
            raise

    def _put(self, key: str, item: dict) -> None:
        table = self.tables[key]
        try:
            table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing {item.get('id')} to {table.name}: {e}")
            raise

    # Sources

    def save_source(self, source: Source) -> Source:
        """Insert or update a source, assigning an id on first save."""
        now = _now()
        if source.id is None:
            source.id = _new_id()
            source.created_at = now
        source.updated_at = now
        self._put('sources', self._source_to_item(source))
        logger.info(f"Saved source {source.id} ({source.url})")
        return source

    def get_source(self, source_id: str) -> Optional[Source]:
        item = self._get('sources', source_id)
        return self._item_to_source(item) if item else None

    def find_source_by_url(self, url: str) -> Optional[Source]:
        items = self._scan('sources', Attr('url').eq(url))
        if not items:
            return None
        items.sort(key=lambda item: item.get('created_at', ''))
        return self._item_to_source(items[0])

    def find_or_create_source_by_url(self, url: str) -> Source:
        """
        Return the source stored for url, creating it if needed.

        Args:
            url: Source URL, normalized before lookup

        Returns:
            Persisted Source, or an unsaved invalid Source if url is invalid
        """
        source = Source(url=url)
        if not source.is_valid():
            return source

        existing = self.find_source_by_url(source.url)
        if existing:
            return existing
        return self.save_source(source)

    def list_sources(
        self,
        organization_id: Optional[str] = None,
        enabled: Optional[bool] = None
    ) -> List[Source]:
        """List sources, optionally restricted to an organization or enabled state."""
        condition = None
        if organization_id is not None:
            condition = Attr('organization_id').eq(organization_id)
        if enabled is not None:
            enabled_condition = Attr('enabled').eq(enabled)
            condition = enabled_condition if condition is None else condition & enabled_condition

        items = self._scan('sources', condition)
        sources = [self._item_to_source(item) for item in items]
        sources.sort(key=lambda source: source.created_at or _now())
        return sources

    def delete_source(self, source_id: str) -> None:
        table = self.tables['sources']
        try:
            table.delete_item(Key={'id': source_id})
            logger.info(f"Deleted source {source_id}")
        except ClientError as e:
            logger.error(f"Error deleting source {source_id}: {e}")
            raise

    # Events

    def save_event(self, event: Event) -> Event:
        if event.id is None:
            event.id = _new_id()
            event.created_at = _now()
        self._put('events', self._event_to_item(event))
        return event

    def get_event(self, event_id: str) -> Optional[Event]:
        item = self._get('events', event_id)
        return self._item_to_event(item) if item else None

    def get_events_for_source(
        self,
        source_id: str,
        since: Optional[datetime] = None,
        before: Optional[datetime] = None,
        non_duplicates: bool = True
    ) -> List[Event]:
        """
        Get events belonging to a source, ordered by start time.

        Args:
            source_id: Owning source id
            since: Only events starting at or after this time
            before: Only events starting strictly before this time
            non_duplicates: Exclude events marked as duplicates

        Returns:
            List of Event objects
        """
        condition = Attr('source_id').eq(source_id)
        if since is not None:
            condition = condition & Attr('start_time').gte(_to_iso(since))
        if before is not None:
            condition = condition & Attr('start_time').lt(_to_iso(before))
        if non_duplicates:
            condition = condition & Attr('duplicate_of_id').not_exists()

        events = [self._item_to_event(item) for item in self._scan('events', condition)]
        events.sort(key=lambda event: event.start_time)
        return events

    def get_future_events(self, source_id: str, now: Optional[datetime] = None, limit: int = 10) -> List[Event]:
        """Upcoming non-duplicate events, soonest first."""
        events = self.get_events_for_source(source_id, since=now or _now())
        return events[:limit]

    def get_past_events(self, source_id: str, now: Optional[datetime] = None, limit: int = 10) -> List[Event]:
        """Past non-duplicate events, most recent first."""
        events = self.get_events_for_source(source_id, before=now or _now())
        events.reverse()
        return events[:limit]

    # Abstract events

    def save_abstract_event(self, abstract_event: AbstractEvent) -> AbstractEvent:
        if abstract_event.id is None:
            abstract_event.id = _new_id()
            abstract_event.created_at = _now()
        self._put('abstract_events', self._abstract_event_to_item(abstract_event))
        return abstract_event

    def get_abstract_events(
        self,
        source_id: Optional[str] = None,
        valid: Optional[bool] = None
    ) -> List[AbstractEvent]:
        """List stored abstract events, optionally by source and validity."""
        condition = None
        if source_id is not None:
            condition = Attr('source_id').eq(source_id)
        if valid is not None:
            valid_condition = Attr('valid').eq(valid)
            condition = valid_condition if condition is None else condition & valid_condition

        items = self._scan('abstract_events', condition)
        abstract_events = [self._item_to_abstract_event(item) for item in items]
        abstract_events.sort(key=lambda abstract_event: abstract_event.created_at or _now())
        return abstract_events

    def count_abstract_events(self, valid: Optional[bool] = None) -> int:
        return len(self.get_abstract_events(valid=valid))

    # Venues

    def find_or_create_venue(self, venue: Venue) -> Venue:
        """Return the source's venue with the same title, creating it if needed."""
        condition = Attr('title').eq(venue.title)
        if venue.source_id is not None:
            condition = condition & Attr('source_id').eq(venue.source_id)

        items = self._scan('venues', condition)
        if items:
            return self._item_to_venue(items[0])

        venue.id = _new_id()
        self._put('venues', _compact({
            'id': venue.id,
            'title': venue.title,
            'address': venue.address,
            'url': venue.url,
            'source_id': venue.source_id,
        }))
        logger.info(f"Created venue {venue.id} ({venue.title})")
        return venue

    def get_venue(self, venue_id: str) -> Optional[Venue]:
        item = self._get('venues', venue_id)
        return self._item_to_venue(item) if item else None

    # Taxonomy

    def get_term(self, kind: str, term_id: str) -> Optional[TaxonomyTerm]:
        item = self._get(self._taxonomy_key(kind), term_id)
        return TaxonomyTerm(id=item['id'], name=item['name'], kind=kind) if item else None

    def find_term_by_name(self, kind: str, name: str) -> Optional[TaxonomyTerm]:
        items = self._scan(self._taxonomy_key(kind), Attr('name').eq(name))
        if not items:
            return None
        return TaxonomyTerm(id=items[0]['id'], name=items[0]['name'], kind=kind)

    def create_term(self, kind: str, name: str) -> TaxonomyTerm:
        term = TaxonomyTerm(id=_new_id(), name=name, kind=kind)
        self._put(self._taxonomy_key(kind), {'id': term.id, 'name': term.name})
        logger.info(f"Created {kind} '{name}' ({term.id})")
        return term

    def list_terms(self, kind: str) -> List[TaxonomyTerm]:
        items = self._scan(self._taxonomy_key(kind))
        return sorted(
            (TaxonomyTerm(id=item['id'], name=item['name'], kind=kind) for item in items),
            key=lambda term: term.name
        )

    def _taxonomy_key(self, kind: str) -> str:
        if kind not in TAXONOMY_KINDS:
            raise ValueError(f"Unknown taxonomy kind: {kind}")
        return kind

    # Item conversion

    def _source_to_item(self, source: Source) -> dict:
        return _compact({
            'id': source.id,
            'url': source.url,
            'title': source.title,
            'enabled': bool(source.enabled),
            'reimport': bool(source.reimport),
            'organization_id': source.organization_id,
            'topic_ids': list(source.topic_ids),
            'type_ids': list(source.type_ids),
            'created_at': _to_iso(source.created_at),
            'updated_at': _to_iso(source.updated_at),
        })

    def _item_to_source(self, item: dict) -> Source:
        return Source(
            id=item['id'],
            url=item.get('url'),
            title=item.get('title'),
            enabled=item.get('enabled', True),
            reimport=item.get('reimport', False),
            organization_id=item.get('organization_id'),
            topic_ids=item.get('topic_ids', []),
            type_ids=item.get('type_ids', []),
            created_at=_from_iso(item.get('created_at')),
            updated_at=_from_iso(item.get('updated_at'))
        )

    def _event_to_item(self, event: Event) -> dict:
        return _compact({
            'id': event.id,
            'title': event.title,
            'description': event.description,
            'url': event.url,
            'start_time': _to_iso(event.start_time),
            'end_time': _to_iso(event.end_time),
            'venue_id': event.venue_id,
            'source_id': event.source_id,
            'organization_id': event.organization_id,
            'topic_ids': list(event.topic_ids),
            'type_ids': list(event.type_ids),
            'duplicate_of_id': event.duplicate_of_id,
            'created_at': _to_iso(event.created_at),
        })

    def _item_to_event(self, item: dict) -> Event:
        return Event(
            id=item['id'],
            title=item.get('title'),
            description=item.get('description'),
            url=item.get('url'),
            start_time=_from_iso(item.get('start_time')),
            end_time=_from_iso(item.get('end_time')),
            venue_id=item.get('venue_id'),
            source_id=item.get('source_id'),
            organization_id=item.get('organization_id'),
            topic_ids=item.get('topic_ids', []),
            type_ids=item.get('type_ids', []),
            duplicate_of_id=item.get('duplicate_of_id'),
            created_at=_from_iso(item.get('created_at'))
        )

    def _abstract_event_to_item(self, abstract_event: AbstractEvent) -> dict:
        location = abstract_event.abstract_location
        location_item = None
        if location is not None:
            location_item = _compact({
                'title': location.title,
                'address': location.address,
                'url': location.url,
            })

        return _compact({
            'id': abstract_event.id,
            'title': abstract_event.title,
            'description': abstract_event.description,
            'url': abstract_event.url,
            'start_time': _to_iso(abstract_event.start_time),
            'end_time': _to_iso(abstract_event.end_time),
            'abstract_location': location_item,
            'source_id': abstract_event.source_id,
            'valid': bool(abstract_event.valid),
            'errors': list(abstract_event.errors),
            'event_id': abstract_event.event_id,
            'created_at': _to_iso(abstract_event.created_at),
        })

    def _item_to_abstract_event(self, item: dict) -> AbstractEvent:
        location = None
        if item.get('abstract_location') is not None:
            location_item: Dict[str, str] = item['abstract_location']
            location = AbstractLocation(
                title=location_item.get('title'),
                address=location_item.get('address'),
                url=location_item.get('url'),
                source_id=item.get('source_id')
            )

        return AbstractEvent(
            id=item['id'],
            title=item.get('title'),
            description=item.get('description'),
            url=item.get('url'),
            start_time=_from_iso(item.get('start_time')),
            end_time=_from_iso(item.get('end_time')),
            abstract_location=location,
            source_id=item.get('source_id'),
            valid=item.get('valid'),
            errors=item.get('errors', []),
            event_id=item.get('event_id'),
            created_at=_from_iso(item.get('created_at'))
        )

    def _item_to_venue(self, item: dict) -> Venue:
        return Venue(
            id=item['id'],
            title=item.get('title'),
            address=item.get('address'),
            url=item.get('url'),
            source_id=item.get('source_id')
        )
