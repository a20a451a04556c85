"""Shared fixtures for tests."""
from datetime import datetime, timedelta, timezone

import pytest
from moto import mock_aws

from processor.models import AbstractEvent, AbstractLocation
from storage.dynamodb_manager import DynamoDBManager


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never talks to a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def store(aws_credentials):
    """DynamoDBManager backed by mocked tables."""
    with mock_aws():
        manager = DynamoDBManager('test-importer', region_name='us-east-1')
        manager.create_tables()
        yield manager


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def future_abstract_event(now):
    """Factory for valid abstract events starting in the future."""
    def build(title='Future Event', days=2, **kwargs):
        return AbstractEvent(
            title=title,
            description=kwargs.pop('description', 'Description'),
            url=kwargs.pop('url', f"http://example.com/events/{title.lower().replace(' ', '-')}"),
            start_time=kwargs.pop('start_time', now + timedelta(days=days)),
            **kwargs
        )
    return build


@pytest.fixture
def abstract_location():
    return AbstractLocation(title='Town Hall', address='1 Main St', url='http://example.com/hall')
