"""
Tests for GitHubClient API interactions.

This file tests the GitHub API client including:
- Initialization and configuration
- GraphQL error handling
- Migration sources and migrations
- Migration status fetches without retry
- Teams, autolinks and secret scanning alerts
"""

import pytest
from unittest.mock import MagicMock, patch
import requests

from github_migration.clients.github_client import GitHubClient
from github_migration.exceptions import APIError, AuthenticationError, NetworkError, ValidationError


def _payload(mock_request, index=-1):
    return mock_request.call_args_list[index].kwargs['json']


@pytest.fixture
def client(mock_logger):
    return GitHubClient('ghp_token', logger=mock_logger, sleep=MagicMock())


class TestGitHubClientInitialization:
    """Test client initialization and configuration."""

    def test_init_defaults(self, client):
        """Test the default API URL and auth header."""
        assert client.api_url == 'https://api.github.com'
        assert client.session.headers['Authorization'] == 'token ghp_token'

    def test_init_custom_api_url(self):
        client = GitHubClient('ghp_token', api_url='https://api.contoso.ghe.com/')

        assert client.api_url == 'https://api.contoso.ghe.com'
        assert client.url('graphql') == 'https://api.contoso.ghe.com/graphql'

    def test_init_empty_token_raises_error(self):
        """Test that empty token raises ValidationError."""
        with pytest.raises(ValidationError, match="token cannot be empty"):
            GitHubClient('')


class TestGraphQL:
    """Test GraphQL request handling."""

    def test_returns_data(self, client, graphql_factory):
        with patch.object(client.session, 'request', return_value=graphql_factory({'viewer': {'login': 'me'}})) as mock_request:
            data = client.graphql('query { viewer { login } }')

        assert data == {'viewer': {'login': 'me'}}
        assert mock_request.call_args.args == ('POST', 'https://api.github.com/graphql')

    def test_errors_raise_api_error(self, client, graphql_factory):
        """Test that a GraphQL errors array becomes an APIError."""
        response = graphql_factory(None, errors=[{'message': 'Could not resolve to a node'}])
        with patch.object(client.session, 'request', return_value=response):
            with pytest.raises(APIError, match="Could not resolve to a node"):
                client.graphql('query { node }')

    def test_get_organization_id(self, client, graphql_factory):
        with patch.object(client.session, 'request', return_value=graphql_factory({'organization': {'id': 'O_1'}})):
            assert client.get_organization_id('my-org') == 'O_1'

    def test_get_organization_id_missing(self, client, graphql_factory):
        with patch.object(client.session, 'request', return_value=graphql_factory({'organization': None})):
            with pytest.raises(APIError, match="Failed to lookup the Organization ID for organization 'my-org'"):
                client.get_organization_id('my-org')


class TestMigrations:
    """Test starting and polling migrations."""

    def test_start_migration(self, client, graphql_factory):
        """Test the startRepositoryMigration variables."""
        response = graphql_factory({'startRepositoryMigration': {'repositoryMigration': {'id': 'RM_1'}}})
        with patch.object(client.session, 'request', return_value=response) as mock_request:
            migration_id = client.start_migration('MS_1', 'https://dev.azure.com/o/p/_git/r', 'O_1', 'repo',
                                                  'ado-token', 'gh-token', target_repo_visibility='private')

        assert migration_id == 'RM_1'
        variables = _payload(mock_request)['variables']
        assert variables['sourceId'] == 'MS_1'
        assert variables['repositoryName'] == 'repo'
        assert variables['accessToken'] == 'ado-token'
        assert variables['githubPat'] == 'gh-token'
        assert variables['targetRepoVisibility'] == 'private'
        assert variables['continueOnError'] is True

    def test_start_bbs_migration_uses_archive(self, client, graphql_factory):
        response = graphql_factory({'startRepositoryMigration': {'repositoryMigration': {'id': 'RM_2'}}})
        with patch.object(client.session, 'request', return_value=response) as mock_request:
            client.start_bbs_migration('MS_1', 'https://bbs/projects/P/repos/r/browse', 'O_1', 'repo',
                                       'gh-token', 'https://storage/archive.tar')

        variables = _payload(mock_request)['variables']
        assert variables['gitArchiveUrl'] == 'https://storage/archive.tar'
        assert variables['metadataArchiveUrl'] == 'https://not-used'
        assert variables['accessToken'] == 'not-used'

    def test_get_migration(self, client, graphql_factory):
        """Test parsing of a repository migration status."""
        node = {'state': 'FAILED', 'repositoryName': 'repo1', 'warningsCount': 2,
                'failureReason': 'too big', 'migrationLogUrl': 'https://log'}
        with patch.object(client.session, 'request', return_value=graphql_factory({'node': node})):
            status = client.get_migration('RM_1')

        assert status.state == 'FAILED'
        assert status.repository_name == 'repo1'
        assert status.warnings_count == 2
        assert status.failure_reason == 'too big'
        assert status.migration_log_url == 'https://log'

    def test_get_migration_is_not_retried(self, client, response_factory):
        """Test that a transient status fetch failure surfaces immediately."""
        with patch.object(client.session, 'request', return_value=response_factory(502)) as mock_request:
            with pytest.raises(APIError) as exc_info:
                client.get_migration('RM_1')

        assert exc_info.value.status_code == 502
        assert mock_request.call_count == 1
        client._sleep.assert_not_called()

    def test_get_migration_keeps_authentication_error(self, client, response_factory):
        """Test that an expired token is reported as such, with its status code."""
        with patch.object(client.session, 'request', return_value=response_factory(401)):
            with pytest.raises(AuthenticationError) as exc_info:
                client.get_migration('RM_1')

        assert exc_info.value.status_code == 401

    def test_get_organization_migration_keeps_network_error(self, client):
        with patch.object(client.session, 'request', side_effect=requests.exceptions.ConnectionError("reset")):
            with pytest.raises(NetworkError):
                client.get_organization_migration('OM_1')

    def test_get_migration_unknown_id(self, client, graphql_factory):
        """Test that a missing node is reported against the migration id."""
        with patch.object(client.session, 'request', return_value=graphql_factory({'node': None})):
            with pytest.raises(APIError, match="Failed to get migration state for migration RM_1"):
                client.get_migration('RM_1')

    def test_get_organization_migration(self, client, graphql_factory):
        node = {'state': 'REPO_MIGRATION', 'sourceOrgUrl': 'https://github.com/src', 'targetOrgName': 'dst',
                'failureReason': None, 'remainingRepositoriesCount': 3, 'totalRepositoriesCount': 10}
        with patch.object(client.session, 'request', return_value=graphql_factory({'node': node})):
            status = client.get_organization_migration('OM_1')

        assert status.completed_repositories_count == 7
        assert status.target_org_name == 'dst'

    def test_get_migration_log_url(self, client, graphql_factory):
        data = {'organization': {'repositoryMigrations': {'nodes': [{'id': 'RM_5', 'migrationLogUrl': None}]}}}
        with patch.object(client.session, 'request', return_value=graphql_factory(data)):
            assert client.get_migration_log_url('org', 'repo') == ('', 'RM_5')

    def test_get_migration_log_url_no_migration(self, client, graphql_factory):
        data = {'organization': {'repositoryMigrations': {'nodes': []}}}
        with patch.object(client.session, 'request', return_value=graphql_factory(data)):
            assert client.get_migration_log_url('org', 'repo') is None

    def test_abort_invalid_id(self, client, graphql_factory):
        """Test that an unknown migration id is reported as invalid input."""
        response = graphql_factory(None, errors=[{'message': "Could not resolve to a node with the global id of 'RM_x'"}])
        with patch.object(client.session, 'request', return_value=response):
            with pytest.raises(ValidationError, match="Invalid migration id: RM_x"):
                client.abort_migration('RM_x')

    def test_grant_migrator_role(self, client, graphql_factory):
        response = graphql_factory({'grantMigratorRole': {'success': True}})
        with patch.object(client.session, 'request', return_value=response) as mock_request:
            assert client.grant_migrator_role('O_1', 'octocat', 'USER') is True

        assert 'grantMigratorRole(input:' in _payload(mock_request)['query']

    def test_revoke_migrator_role_failure_returns_false(self, client, graphql_factory):
        response = graphql_factory(None, errors=[{'message': 'not allowed'}])
        with patch.object(client.session, 'request', return_value=response):
            assert client.revoke_migrator_role('O_1', 'octocat', 'USER') is False


class TestRestEndpoints:
    """Test REST endpoints."""

    def test_create_team(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(201, {'id': 9, 'slug': 'my-team'})) as mock_request:
            assert client.create_team('org', 'My Team') == ('9', 'my-team')

        assert mock_request.call_args.kwargs['json'] == {'name': 'My Team', 'privacy': 'closed'}

    def test_get_idp_group_id(self, client, response_factory):
        body = {'groups': [{'group_id': 1, 'group_name': 'Other'}, {'group_id': 42, 'group_name': 'Engineering'}]}
        with patch.object(client.session, 'request', return_value=response_factory(200, body)):
            assert client.get_idp_group_id('org', 'engineering') == 42

    def test_get_idp_group_id_missing(self, client, response_factory):
        with patch.object(client.session, 'request', return_value=response_factory(200, {'groups': []})):
            with pytest.raises(APIError, match="IdP group 'eng' was not found"):
                client.get_idp_group_id('org', 'eng')

    def test_add_autolink_validates_input(self, client):
        with pytest.raises(ValidationError, match="key_prefix"):
            client.add_autolink('org', 'repo', ' ', 'https://x/<num>')

    def test_update_secret_scanning_alert_payload(self, client, response_factory):
        """Test that resolution fields are sent only for resolved alerts."""
        with patch.object(client.session, 'request', return_value=response_factory(200, {})) as mock_request:
            client.update_secret_scanning_alert('org', 'repo', 3, 'resolved', 'revoked', 'rotated')
            client.update_secret_scanning_alert('org', 'repo', 4, 'open')

        assert mock_request.call_args_list[0].kwargs['json'] == {
            'state': 'resolved', 'resolution': 'revoked', 'resolution_comment': 'rotated'
        }
        assert mock_request.call_args_list[1].kwargs['json'] == {'state': 'open'}

    def test_update_secret_scanning_alert_invalid_state(self, client):
        with pytest.raises(ValidationError, match="Invalid secret scanning alert state"):
            client.update_secret_scanning_alert('org', 'repo', 3, 'dismissed')

    def test_secret_scanning_alert_locations(self, client, response_factory):
        body = [{'type': 'commit', 'details': {'path': 'a.txt', 'blob_sha': 'abc'}}]
        with patch.object(client.session, 'request', return_value=response_factory(200, body)):
            assert client.get_secret_scanning_alert_locations('org', 'repo', 1) == [{'path': 'a.txt', 'blob_sha': 'abc'}]
