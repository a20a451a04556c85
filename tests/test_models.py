"""Unit tests for source models and URL normalization."""
from datetime import datetime, timezone

import pytest

from processor.errors import UnknownAttributeError
from processor.models import ImportResult, Source, SourceAttributes, as_utc
from processor.url_normalizer import normalize_url


class TestSourceUrl:
    """Test cases for source URL normalization."""

    HTTP_URL = 'http://upcoming.example.com/event/390164/'
    ICAL_URL = 'webcal://upcoming.example.com/event/390164/'
    BASE_URL = 'upcoming.example.com/event/390164/'

    def test_supported_scheme_unchanged(self):
        source = Source(url=self.HTTP_URL)
        assert source.url == self.HTTP_URL

    def test_https_unchanged(self):
        source = Source(url='https://example.com/feed')
        assert source.url == 'https://example.com/feed'

    def test_substitutes_http_for_webcal(self):
        source = Source()
        source.url = self.ICAL_URL
        assert source.url == self.HTTP_URL

    def test_adds_http_prefix(self):
        source = Source()
        source.url = self.BASE_URL
        assert source.url == self.HTTP_URL

    def test_strips_whitespace(self):
        source = Source()
        source.url = f"     {self.HTTP_URL}     "
        assert source.url == self.HTTP_URL

    def test_invalid_url_is_nil_and_invalid(self):
        source = Source()
        source.url = '\\O.o/'
        assert source.url is None
        assert not source.is_valid()
        assert source.errors == {'url': ['has invalid format']}
        assert source.full_messages() == ['Url has invalid format']

    def test_blank_url_is_invalid(self):
        source = Source()
        assert not source.is_valid()
        assert source.full_messages() == ["Url can't be blank"]

    def test_assigning_valid_url_clears_invalid_state(self):
        source = Source(url='\\O.o/')
        source.url = self.HTTP_URL
        assert source.is_valid()

    @pytest.mark.parametrize('raw, expected', [
        ('   http://x/   ', 'http://x/'),
        ('webcal://x/', 'http://x/'),
        ('x.com/e/1', 'http://x.com/e/1'),
        ('webcals://x.com/cal.ics', 'https://x.com/cal.ics'),
        ('feed://x.com/rss', 'http://x.com/rss'),
        ('\\O.o/', None),
        ('http://exa mple.com/', None),
        ('ftp://example.com/', None),
        ('mailto:a@b.com', None),
        ('tel:+15551234', None),
        ('localhost:8080/cal', 'http://localhost:8080/cal'),
        ('example.com:8080', 'http://example.com:8080'),
        ('http://bücher.example/', 'http://bücher.example/'),
        ('http://a..b/', None),
        ('', None),
    ])
    def test_normalize_url(self, raw, expected):
        assert normalize_url(raw) == expected

    @pytest.mark.parametrize('url', [
        'http://x/',
        'http://x.com/e/1',
        'https://example.com:8443/calendar?id=1#top',
        'http://127.0.0.1/events',
    ])
    def test_normalize_url_is_idempotent(self, url):
        assert normalize_url(url) == url
        assert normalize_url(normalize_url(url)) == url


class TestSourceName:
    """Test cases for source name resolution."""

    def test_name_is_none_without_title_or_url(self):
        assert Source().name is None

    def test_name_uses_title(self):
        assert Source(title='title').name == 'title'

    def test_name_uses_url(self):
        assert Source(url='http://my.url/').name == 'http://my.url/'

    def test_name_prefers_title_over_url(self):
        assert Source(title='title', url='http://my.url/').name == 'title'


class TestSource:
    """Test cases for Source defaults and errors."""

    def test_enabled_by_default(self):
        assert Source().enabled is True

    def test_valid_with_url(self):
        assert Source(url='http://my.url/').is_valid()

    def test_validation_keeps_base_errors(self):
        source = Source(url='http://my.url/')
        source.add_error('base', "Couldn't connect to remote site.")
        assert not source.is_valid()
        assert source.full_messages() == ["Couldn't connect to remote site."]

    def test_assign_only_copies_given_attributes(self):
        source = Source(url='http://my.url/', title='Old', topic_ids=['t1'])
        source.assign(SourceAttributes(title='New', type_ids=['y1']))
        assert source.url == 'http://my.url/'
        assert source.title == 'New'
        assert source.topic_ids == ['t1']
        assert source.type_ids == ['y1']


class TestSourceAttributes:
    """Test cases for SourceAttributes.from_dict."""

    def test_from_dict(self):
        attributes = SourceAttributes.from_dict({
            'url': 'http://my.url/',
            'title': 'My calendar',
            'enabled': 'false',
            'reimport': 'true',
            'topic_ids': ['fun', 12],
            'type_ids': [],
            'organization_id': 'org-1',
        })
        assert attributes.url == 'http://my.url/'
        assert attributes.enabled is False
        assert attributes.reimport is True
        assert attributes.topic_ids == ['fun', '12']
        assert attributes.type_ids == []

    def test_from_dict_defaults(self):
        attributes = SourceAttributes.from_dict(None)
        assert attributes.url is None
        assert attributes.reimport is False
        assert attributes.topic_ids is None

    def test_rejects_unknown_keys(self):
        with pytest.raises(UnknownAttributeError, match='admin'):
            SourceAttributes.from_dict({'url': 'http://my.url/', 'admin': True})

    @pytest.mark.parametrize('data, message', [
        ({'url': 123}, 'url must be a string'),
        ({'title': ['a']}, 'title must be a string'),
        ({'organization_id': 7}, 'organization_id must be a string'),
        ({'topic_ids': 'music'}, 'topic_ids must be a list'),
        ({'type_ids': {'id': 'x'}}, 'type_ids must be a list'),
    ])
    def test_rejects_wrong_types(self, data, message):
        with pytest.raises(ValueError, match=message):
            SourceAttributes.from_dict(data)

    def test_accepts_tuples_for_ids(self):
        attributes = SourceAttributes.from_dict({'topic_ids': ('a', 'b')})
        assert attributes.topic_ids == ['a', 'b']


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2030, 1, 1, 12, 0)
    assert as_utc(naive) == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None


def test_import_result_counts():
    result = ImportResult(events=[object(), object()], quarantined=[object()])
    assert result.created_count == 2
    assert result.quarantined_count == 1
