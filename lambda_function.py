"""AWS Lambda handler for importing events from sources."""
import json
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from processor.errors import RecordNotFound, UnknownAttributeError
from processor.models import AbstractEvent, Event, Source, SourceAttributes, to_bool
from processor.source_service import SourceService
from scraper.upstream_fetcher import UpstreamFetcher
from storage.dynamodb_manager import DynamoDBManager


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def source_to_dict(source: Source) -> Dict[str, Any]:
    return {
        'id': source.id,
        'name': source.name,
        'url': source.url,
        'title': source.title,
        'enabled': source.enabled,
        'reimport': source.reimport,
        'organization_id': source.organization_id,
        'topic_ids': source.topic_ids,
        'type_ids': source.type_ids,
    }


def event_to_dict(event: Event) -> Dict[str, Any]:
    return {
        'id': event.id,
        'title': event.title,
        'description': event.description,
        'url': event.url,
        'start_time': _iso(event.start_time),
        'end_time': _iso(event.end_time),
        'venue_id': event.venue_id,
        'source_id': event.source_id,
        'organization_id': event.organization_id,
        'topic_ids': event.topic_ids,
        'type_ids': event.type_ids,
    }


def abstract_event_to_dict(abstract_event: AbstractEvent) -> Dict[str, Any]:
    return {
        'id': abstract_event.id,
        'title': abstract_event.title,
        'url': abstract_event.url,
        'start_time': _iso(abstract_event.start_time),
        'end_time': _iso(abstract_event.end_time),
        'source_id': abstract_event.source_id,
        'errors': abstract_event.errors,
    }


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def _handle_import(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    attributes = SourceAttributes.from_dict(event.get('source'))
    report = service.import_source(
        attributes,
        organization_id=event.get('organization_id'),
        range_start=range_start
    )
    body = {
        'message': report.message,
        'status': report.status,
        'source': source_to_dict(report.source),
        'statistics': {
            'events_created': report.result.created_count,
            'events_quarantined': report.result.quarantined_count,
        },
        'preview': report.preview(),
        'events': [event_to_dict(created) for created in report.events],
        'errors': report.source.errors,
    }
    return (422 if report.status == 'failed' else 200), body


def _handle_create(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    source = service.create(SourceAttributes.from_dict(event.get('source')))
    if source.errors:
        return 422, {'message': 'Source is invalid', 'errors': source.errors}
    return 201, {'message': 'Source was successfully created.', 'source': source_to_dict(source)}


def _handle_update(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    source = service.update(event['source_id'], SourceAttributes.from_dict(event.get('source')))
    if source.errors:
        return 422, {'message': "Source edit didn't validate.", 'errors': source.errors}
    return 200, {'message': 'Source was successfully updated.', 'source': source_to_dict(source)}


def _handle_index(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    enabled = event.get('enabled')
    sources = service.list_sources(
        organization_id=event.get('organization_id'),
        enabled=None if enabled is None else to_bool(enabled)
    )
    return 200, {
        'count': len(sources),
        'sources': [source_to_dict(s) for s in sources],
    }


def _handle_show(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    details = service.show(event['source_id'])
    return 200, {
        'source': source_to_dict(details.source),
        'future_events': [event_to_dict(e) for e in details.future_events],
        'past_events': [event_to_dict(e) for e in details.past_events],
    }


def _handle_destroy(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    service.destroy(event['source_id'])
    return 200, {'message': 'Source was successfully deleted.'}


def _handle_quarantine(service: SourceService, event: Dict[str, Any], range_start: datetime) -> tuple:
    abstract_events = service.quarantined(event.get('source_id'))
    return 200, {
        'count': len(abstract_events),
        'abstract_events': [abstract_event_to_dict(a) for a in abstract_events],
    }


ACTIONS = {
    'index': _handle_index,
    'import': _handle_import,
    'create': _handle_create,
    'update': _handle_update,
    'show': _handle_show,
    'destroy': _handle_destroy,
    'quarantine': _handle_quarantine,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for source imports.

    Args:
        event: Request payload with an 'action' (default 'import')
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    table_prefix = os.environ.get('TABLE_PREFIX', 'event-importer')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    range_start_offset = int(os.environ.get('RANGE_START_OFFSET_MINUTES', '60'))
    max_events_in_summary = int(os.environ.get('MAX_EVENTS_IN_SUMMARY', '5'))
    region_name = os.environ.get('AWS_REGION')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action', 'import')
    logger.info(
        f"Lambda execution started: {action}",
        extra={
            'table_prefix': table_prefix,
            'timeout_seconds': timeout_seconds
        }
    )

    handler = ACTIONS.get(action)
    if handler is None:
        return _response(400, {'message': f"Unknown action: {action}"}, start_time)

    try:
        store = DynamoDBManager(table_prefix=table_prefix, region_name=region_name)
        fetcher = UpstreamFetcher(timeout=timeout_seconds)
        service = SourceService(store, fetcher, max_events_in_summary=max_events_in_summary)
        range_start = datetime.now(timezone.utc) + timedelta(minutes=range_start_offset)

        status_code, body = handler(service, event, range_start)

    except (UnknownAttributeError, ValueError, KeyError) as e:
        logger.warning(f"Bad request for {action}: {e}")
        return _response(400, {'message': 'Bad request', 'error': str(e)}, start_time)

    except RecordNotFound as e:
        return _response(404, {'message': str(e)}, start_time)

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__
        }, start_time)

    logger.info(
        f"Lambda execution completed: {action}",
        extra={'status_code': status_code}
    )
    return _response(status_code, body, start_time)
