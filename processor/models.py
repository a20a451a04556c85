"""Data models for source imports."""
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from processor.errors import UnknownAttributeError
from processor.url_normalizer import normalize_url


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return value as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class AbstractLocation:
    """Unconfirmed venue fetched from an upstream source."""
    title: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    source: Optional['Source'] = field(default=None, repr=False, compare=False)
    source_id: Optional[str] = None


@dataclass
class AbstractEvent:
    """Unconfirmed event fetched from an upstream source."""
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    abstract_location: Optional[AbstractLocation] = None
    source: Optional['Source'] = field(default=None, repr=False, compare=False)
    source_id: Optional[str] = None
    id: Optional[str] = None
    valid: Optional[bool] = None
    errors: List[str] = field(default_factory=list)
    event_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Venue:
    """Venue created from an abstract location."""
    title: str
    address: Optional[str] = None
    url: Optional[str] = None
    source_id: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Event:
    """Canonical event belonging to exactly one source."""
    title: Optional[str]
    start_time: Optional[datetime]
    source_id: Optional[str]
    description: Optional[str] = None
    url: Optional[str] = None
    end_time: Optional[datetime] = None
    venue_id: Optional[str] = None
    organization_id: Optional[str] = None
    topic_ids: List[str] = field(default_factory=list)
    type_ids: List[str] = field(default_factory=list)
    duplicate_of_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class TaxonomyTerm:
    """Named topic or type."""
    name: str
    kind: str
    id: Optional[str] = None


@dataclass
class ImportResult:
    """Outcome of a single import run."""
    events: List[Event] = field(default_factory=list)
    quarantined: List[AbstractEvent] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.events)

    @property
    def quarantined_count(self) -> int:
        return len(self.quarantined)


@dataclass
class SourceAttributes:
    """Settable attributes of a source."""
    url: Optional[str] = None
    title: Optional[str] = None
    enabled: Optional[bool] = None
    reimport: bool = False
    topic_ids: Optional[List[str]] = None
    type_ids: Optional[List[str]] = None
    organization_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SourceAttributes':
        """
        Build attributes from a request payload.

        Args:
            data: Mapping of attribute names to values

        Returns:
            SourceAttributes instance

        Raises:
            UnknownAttributeError: If data contains an unknown key
            ValueError: If a value has the wrong type
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise UnknownAttributeError(
                f"Unknown source attribute(s): {', '.join(unknown)}"
            )

        for key in ('url', 'title', 'organization_id'):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise ValueError(f"Source attribute {key} must be a string")
        for key in ('topic_ids', 'type_ids'):
            if data.get(key) is not None and not isinstance(data[key], (list, tuple)):
                raise ValueError(f"Source attribute {key} must be a list")

        for flag in ('enabled', 'reimport'):
            if data.get(flag) is not None:
                data[flag] = to_bool(data[flag])
        if data.get('reimport') is None:
            data['reimport'] = False
        for key in ('topic_ids', 'type_ids'):
            if data.get(key) is not None:
                data[key] = [str(ref) for ref in data[key]]

        return cls(**data)


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


class Source:
    """Configured upstream origin of events."""

    def __init__(
        self,
        url: Optional[str] = None,
        title: Optional[str] = None,
        enabled: bool = True,
        reimport: bool = False,
        organization_id: Optional[str] = None,
        topic_ids: Optional[List[str]] = None,
        type_ids: Optional[List[str]] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        self.id = id
        self.title = title
        self.enabled = enabled
        self.reimport = reimport
        self.organization_id = organization_id
        self.topic_ids = list(topic_ids or [])
        self.type_ids = list(type_ids or [])
        self.created_at = created_at
        self.updated_at = updated_at
        self.errors: Dict[str, List[str]] = {}
        self._url = None
        self._invalid_url = False
        self.url = url

    @property
    def url(self) -> Optional[str]:
        return self._url

    @url.setter
    def url(self, value: Optional[str]) -> None:
        self._url = normalize_url(value)
        self._invalid_url = self._url is None and bool(value and value.strip())

    @property
    def name(self) -> Optional[str]:
        """Title if present, otherwise the URL."""
        return self.title or self.url or None

    @property
    def is_new_record(self) -> bool:
        return self.id is None

    def assign(self, attributes: SourceAttributes) -> None:
        """Copy explicitly provided attributes onto this source."""
        if attributes.url is not None:
            self.url = attributes.url
        if attributes.title is not None:
            self.title = attributes.title
        if attributes.enabled is not None:
            self.enabled = attributes.enabled
        if attributes.reimport:
            self.reimport = True
        if attributes.topic_ids is not None:
            self.topic_ids = list(attributes.topic_ids)
        if attributes.type_ids is not None:
            self.type_ids = list(attributes.type_ids)
        if attributes.organization_id is not None:
            self.organization_id = attributes.organization_id

    def add_error(self, attribute: str, message: str) -> None:
        self.errors.setdefault(attribute, []).append(message)

    def is_valid(self) -> bool:
        """Run field validations, keeping any pipeline-level base errors."""
        base = self.errors.get('base', [])
        self.errors = {'base': list(base)} if base else {}

        if self._invalid_url:
            self.add_error('url', 'has invalid format')
        elif not self.url:
            self.add_error('url', "can't be blank")

        return not self.errors

    def full_messages(self) -> List[str]:
        messages = []
        for attribute, errors in self.errors.items():
            for error in errors:
                if attribute == 'base':
                    messages.append(error)
                else:
                    messages.append(f"{attribute.capitalize()} {error}")
        return messages

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Source):
            return NotImplemented
        if self.id is None or other.id is None:
            return self is other
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id) if self.id is not None else id(self)

    def __repr__(self) -> str:
        return f"<Source(id={self.id!r}, url={self.url!r}, title={self.title!r})>"
