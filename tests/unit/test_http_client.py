"""
Tests for the shared RestClient plumbing.

This file tests:
- URL joining
- Retry on rate limits and server errors
- Status code to exception mapping
- Link header pagination
"""

import pytest
from unittest.mock import MagicMock, patch
import requests

from github_migration.clients.http_client import RestClient
from github_migration.exceptions import APIError, AuthenticationError, NetworkError, ValidationError


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def client(sleep, mock_logger):
    return RestClient('https://api.example.com/', logger=mock_logger, max_retries=2, sleep=sleep)


class TestRestClientInitialization:
    """Test client construction."""

    def test_base_url_is_normalised(self, client):
        assert client.base_url == 'https://api.example.com'

    def test_empty_base_url_raises(self):
        with pytest.raises(ValidationError, match="base URL cannot be empty"):
            RestClient('  ')

    def test_url_joins_relative_paths(self, client):
        assert client.url('/repos/a/b') == 'https://api.example.com/repos/a/b'
        assert client.url('https://other.example.com/x') == 'https://other.example.com/x'

    def test_default_sleep_is_time_sleep(self):
        """Test that time.sleep is looked up when the client is built."""
        with patch('time.sleep') as mock_sleep:
            client = RestClient('https://api.example.com')

        assert client._sleep is mock_sleep


class TestRetries:
    """Test retry behaviour."""

    def test_retries_server_errors(self, client, sleep, response_factory):
        """Test that a 502 is retried and the next success returned."""
        with patch.object(client.session, 'request', side_effect=[
            response_factory(502, {'message': 'bad gateway'}),
            response_factory(200, {'ok': True}),
        ]) as mock_request:
            assert client.get('thing') == {'ok': True}

        assert mock_request.call_count == 2
        sleep.assert_called_once_with(1)

    def test_retry_after_header(self, client, sleep, response_factory):
        """Test that Retry-After decides the wait time."""
        with patch.object(client.session, 'request', side_effect=[
            response_factory(429, {}, headers={'Retry-After': '7'}),
            response_factory(200, {'ok': True}),
        ]):
            client.get('thing')

        sleep.assert_called_once_with(7.0)

    def test_rate_limited_403_is_retried(self, client, sleep, response_factory):
        with patch.object(client.session, 'request', side_effect=[
            response_factory(403, {'message': 'API rate limit exceeded'}),
            response_factory(200, [1]),
        ]):
            assert client.get('thing') == [1]

    def test_gives_up_after_max_retries(self, client, sleep, response_factory):
        """Test that the final failed response is mapped to an APIError."""
        with patch.object(client.session, 'request', return_value=response_factory(500, {'message': 'oops'})) as mock_request:
            with pytest.raises(APIError) as exc_info:
                client.get('thing')

        assert exc_info.value.status_code == 500
        assert mock_request.call_count == 3

    def test_max_retries_zero_disables_retry(self, client, sleep, response_factory):
        """Test a single attempt when retries are disabled for the call."""
        with patch.object(client.session, 'request', return_value=response_factory(503)) as mock_request:
            with pytest.raises(APIError):
                client.request('GET', 'thing', max_retries=0)

        assert mock_request.call_count == 1
        sleep.assert_not_called()

    def test_network_error_after_retries(self, client, sleep):
        with patch.object(client.session, 'request', side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(NetworkError, match="refused"):
                client.get('thing')

        assert sleep.call_count == 2


class TestStatusMapping:
    """Test mapping of failed responses to exceptions."""

    def test_401(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(401)):
            with pytest.raises(AuthenticationError, match="authentication failed"):
                client.get('thing')

    def test_403_without_rate_limit(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(403, {'message': 'Resource not accessible'})):
            with pytest.raises(AuthenticationError) as exc_info:
                client.get('thing')

        assert exc_info.value.status_code == 403
        assert 'Resource not accessible' in str(exc_info.value)

    def test_404_uses_custom_message(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(404)):
            with pytest.raises(APIError, match="Nothing here") as exc_info:
                client.get('thing', not_found_message="Nothing here")

        assert exc_info.value.status_code == 404

    def test_invalid_json(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(200, text='<html>')):
            with pytest.raises(APIError, match="Invalid JSON"):
                client.get('thing')

    def test_empty_body_is_none(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(204)):
            assert client.delete('thing') is None


class TestPagination:
    """Test Link header pagination."""

    def test_get_all_follows_next_links(self, client, response_factory):
        first = response_factory(200, [{'id': 1}], headers={
            'Link': '<https://api.example.com/items?page=2>; rel="next"'
        })
        second = response_factory(200, [{'id': 2}])

        with patch.object(client.session, 'request', side_effect=[first, second]) as mock_request:
            items = list(client.get_all('items'))

        assert items == [{'id': 1}, {'id': 2}]
        assert mock_request.call_args_list[1].args[1] == 'https://api.example.com/items?page=2'

    def test_get_all_with_wrapped_items(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(200, {'groups': [{'id': 3}]})):
            items = list(client.get_all('groups', items=lambda data: data['groups']))

        assert items == [{'id': 3}]
