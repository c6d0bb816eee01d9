"""
GitHub API client for the migration tool.

This module wraps the GitHub REST and GraphQL endpoints the migration
commands need: migration sources, repository and organization migrations,
teams, the migrator role, autolinks and secret scanning alerts.
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from .http_client import RestClient
from ..core.migration_status import MigrationStatusSnapshot
from ..exceptions import (
    APIError,
    MigrationError,
    ValidationError
)
from ..utils.logging_config import MigrationLogger

DEFAULT_API_URL = 'https://api.github.com'
DEFAULT_ADO_SERVER_URL = 'https://dev.azure.com'

CREATE_MIGRATION_SOURCE_MUTATION = (
    "mutation createMigrationSource($name: String!, $url: String!, $ownerId: ID!, $type: MigrationSourceType!) "
    "{ createMigrationSource(input: {name: $name, url: $url, ownerId: $ownerId, type: $type}) "
    "{ migrationSource { id, name, url, type } } }"
)

START_REPOSITORY_MIGRATION_MUTATION = """
mutation startRepositoryMigration(
    $sourceId: ID!,
    $ownerId: ID!,
    $sourceRepositoryUrl: URI!,
    $repositoryName: String!,
    $continueOnError: Boolean!,
    $gitArchiveUrl: String,
    $metadataArchiveUrl: String,
    $accessToken: String!,
    $githubPat: String,
    $skipReleases: Boolean,
    $targetRepoVisibility: String,
    $lockSource: Boolean) {
  startRepositoryMigration(
    input: {
      sourceId: $sourceId,
      ownerId: $ownerId,
      sourceRepositoryUrl: $sourceRepositoryUrl,
      repositoryName: $repositoryName,
      continueOnError: $continueOnError,
      gitArchiveUrl: $gitArchiveUrl,
      metadataArchiveUrl: $metadataArchiveUrl,
      accessToken: $accessToken,
      githubPat: $githubPat,
      skipReleases: $skipReleases,
      targetRepoVisibility: $targetRepoVisibility,
      lockSource: $lockSource
    }
  ) {
    repositoryMigration { id, databaseId, sourceUrl, state, failureReason }
  }
}
"""

START_ORGANIZATION_MIGRATION_MUTATION = """
mutation startOrganizationMigration(
    $sourceOrgUrl: URI!,
    $targetOrgName: String!,
    $targetEnterpriseId: ID!,
    $sourceAccessToken: String!) {
  startOrganizationMigration(
    input: {
      sourceOrgUrl: $sourceOrgUrl,
      targetOrgName: $targetOrgName,
      targetEnterpriseId: $targetEnterpriseId,
      sourceAccessToken: $sourceAccessToken
    }) {
    orgMigration { id, databaseId }
  }
}
"""

GET_MIGRATION_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on Migration {
      id, sourceUrl, migrationLogUrl, migrationSource { name }, state, warningsCount, failureReason, repositoryName
    }
  }
}
"""

GET_ORGANIZATION_MIGRATION_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on OrganizationMigration {
      state, sourceOrgUrl, targetOrgName, failureReason, remainingRepositoriesCount, totalRepositoriesCount
    }
  }
}
"""

GET_MIGRATION_LOG_URL_QUERY = """
query($org: String!, $repo: String!) {
  organization(login: $org) {
    repositoryMigrations(last: 1, repositoryName: $repo) {
      nodes { id, migrationLogUrl }
    }
  }
}
"""

ABORT_MIGRATION_MUTATION = (
    "mutation abortRepositoryMigration($migrationId: ID!) "
    "{ abortRepositoryMigration(input: { migrationId: $migrationId }) { success } }"
)

MIGRATOR_ROLE_MUTATION = (
    "mutation {operation}($organizationId: ID!, $actor: String!, $actor_type: ActorType!) "
    "{{ {operation}(input: {{organizationId: $organizationId, actor: $actor, actorType: $actor_type}}) {{ success }} }}"
)


def _q(value: str) -> str:
    return quote(str(value), safe='')


class GitHubClient(RestClient):
    """
    Client for the GitHub REST and GraphQL APIs.

    Attributes:
        token (str): GitHub personal access token
        api_url (str): REST API root, also the base of the GraphQL endpoint
    """

    platform = 'GitHub'

    def __init__(self, token: str, api_url: Optional[str] = None, logger: Optional[MigrationLogger] = None,
                 **kwargs) -> None:
        """
        Initialize the GitHub API client.

        Args:
            token: GitHub personal access token
            api_url: API root, defaults to https://api.github.com
            logger: Logger for request tracing
            **kwargs: Passed through to RestClient (max_retries, sleep)

        Raises:
            ValidationError: If the token is empty
        """
        if not token or not token.strip():
            raise ValidationError("GitHub token cannot be empty")

        super().__init__(api_url or DEFAULT_API_URL, logger=logger, **kwargs)
        self.token = token
        self.api_url = self.base_url

        self.session.headers.update({
            'Authorization': f'token {token}',
            'Accept': 'application/vnd.github.v3+json',
            'GraphQL-Features': 'import_api,mannequin_claiming_emu,org_import_api'
        })

    # GraphQL

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None,
                operation_name: Optional[str] = None, max_retries: Optional[int] = None) -> Dict[str, Any]:
        """
        Run a GraphQL query or mutation.

        Returns:
            The "data" object of the response

        Raises:
            APIError: If the response carries an "errors" array
        """
        payload: Dict[str, Any] = {'query': query, 'variables': variables or {}}
        if operation_name:
            payload['operationName'] = operation_name

        response = self.request('POST', 'graphql', json=payload, max_retries=max_retries)
        body = self._json(response) or {}

        errors = body.get('errors')
        if errors:
            raise APIError(errors[0].get('message', 'Unknown GraphQL error'))

        return body.get('data') or {}

    def get_organization_id(self, org: str) -> str:
        try:
            data = self.graphql(
                "query($login: String!) {organization(login: $login) { login, id, name } }",
                {'login': org}
            )
            return data['organization']['id']
        except (MigrationError, KeyError, TypeError) as e:
            raise APIError(f"Failed to lookup the Organization ID for organization '{org}': {e}")

    def get_enterprise_id(self, enterprise: str) -> str:
        try:
            data = self.graphql(
                "query($slug: String!) {enterprise (slug: $slug) { slug, id } }",
                {'slug': enterprise}
            )
            return data['enterprise']['id']
        except (MigrationError, KeyError, TypeError) as e:
            raise APIError(f"Failed to lookup the Enterprise ID for enterprise '{enterprise}': {e}")

    def _create_migration_source(self, org_id: str, name: str, url: str, source_type: str) -> str:
        data = self.graphql(
            CREATE_MIGRATION_SOURCE_MUTATION,
            {'name': name, 'url': url, 'ownerId': org_id, 'type': source_type},
            operation_name='createMigrationSource'
        )
        return data['createMigrationSource']['migrationSource']['id']

    def create_ado_migration_source(self, org_id: str, ado_server_url: Optional[str] = None) -> str:
        return self._create_migration_source(org_id, 'Azure DevOps Source',
                                             ado_server_url or DEFAULT_ADO_SERVER_URL, 'AZURE_DEVOPS')

    def create_bbs_migration_source(self, org_id: str) -> str:
        return self._create_migration_source(org_id, 'Bitbucket Server Source', 'https://not-used', 'BITBUCKET_SERVER')

    def create_ghec_migration_source(self, org_id: str) -> str:
        return self._create_migration_source(org_id, 'GHEC Source', 'https://github.com', 'GITHUB_ARCHIVE')

    def start_migration(self, migration_source_id: str, source_repo_url: str, org_id: str, repo: str,
                        source_token: str, target_token: str, git_archive_url: Optional[str] = None,
                        metadata_archive_url: Optional[str] = None, skip_releases: bool = False,
                        target_repo_visibility: Optional[str] = None, lock_source: bool = False) -> str:
        """
        Queue a repository migration.

        Returns:
            The migration handle (RM_...)
        """
        variables = {
            'sourceId': migration_source_id,
            'ownerId': org_id,
            'sourceRepositoryUrl': source_repo_url,
            'repositoryName': repo,
            'continueOnError': True,
            'gitArchiveUrl': git_archive_url,
            'metadataArchiveUrl': metadata_archive_url,
            'accessToken': source_token,
            'githubPat': target_token,
            'skipReleases': skip_releases,
            'targetRepoVisibility': target_repo_visibility,
            'lockSource': lock_source,
        }
        data = self.graphql(START_REPOSITORY_MIGRATION_MUTATION, variables, operation_name='startRepositoryMigration')
        return data['startRepositoryMigration']['repositoryMigration']['id']

    def start_bbs_migration(self, migration_source_id: str, bbs_repo_url: str, org_id: str, repo: str,
                            target_token: str, archive_url: str, target_repo_visibility: Optional[str] = None) -> str:
        return self.start_migration(
            migration_source_id,
            bbs_repo_url,
            org_id,
            repo,
            'not-used',
            target_token,
            git_archive_url=archive_url,
            metadata_archive_url='https://not-used',
            target_repo_visibility=target_repo_visibility,
        )

    def start_organization_migration(self, source_org_url: str, target_org_name: str, target_enterprise_id: str,
                                     source_access_token: str) -> str:
        variables = {
            'sourceOrgUrl': source_org_url,
            'targetOrgName': target_org_name,
            'targetEnterpriseId': target_enterprise_id,
            'sourceAccessToken': source_access_token,
        }
        data = self.graphql(START_ORGANIZATION_MIGRATION_MUTATION, variables, operation_name='startOrganizationMigration')
        return data['startOrganizationMigration']['orgMigration']['id']

    def get_migration(self, migration_id: str) -> MigrationStatusSnapshot:
        """
        Fetch the current status of a repository migration.

        The call is made once with no HTTP-level retry, so a failed fetch
        surfaces immediately to the poller.
        """
        try:
            node = self.graphql(GET_MIGRATION_QUERY, {'id': migration_id}, max_retries=0)['node']
            return MigrationStatusSnapshot(
                state=node['state'],
                repository_name=node.get('repositoryName'),
                warnings_count=node.get('warningsCount') or 0,
                failure_reason=node.get('failureReason'),
                migration_log_url=node.get('migrationLogUrl'),
            )
        except (KeyError, TypeError) as e:
            raise APIError(f"Failed to get migration state for migration {migration_id}: {e}")

    def get_organization_migration(self, migration_id: str) -> MigrationStatusSnapshot:
        """Fetch the current status of an organization migration, without retry."""
        try:
            node = self.graphql(GET_ORGANIZATION_MIGRATION_QUERY, {'id': migration_id}, max_retries=0)['node']
            return MigrationStatusSnapshot(
                state=node['state'],
                source_org_url=node.get('sourceOrgUrl'),
                target_org_name=node.get('targetOrgName'),
                failure_reason=node.get('failureReason'),
                remaining_repositories_count=node.get('remainingRepositoriesCount'),
                total_repositories_count=node.get('totalRepositoriesCount'),
            )
        except (KeyError, TypeError) as e:
            raise APIError(f"Failed to get migration state for migration {migration_id}: {e}")

    def get_migration_log_url(self, org: str, repo: str) -> Optional[Tuple[str, str]]:
        """
        Find the most recent migration of a repository.

        Returns:
            (migration_log_url, migration_id), or None when the repository has
            never been migrated. The URL is empty while the log is not ready.
        """
        try:
            data = self.graphql(GET_MIGRATION_LOG_URL_QUERY, {'org': org, 'repo': repo})
            nodes = data['organization']['repositoryMigrations']['nodes']
        except (MigrationError, KeyError, TypeError) as e:
            raise APIError(f"Failed to get migration log URL: {e}")

        if not nodes:
            return None
        return nodes[0].get('migrationLogUrl') or '', nodes[0]['id']

    def abort_migration(self, migration_id: str) -> bool:
        try:
            data = self.graphql(ABORT_MIGRATION_MUTATION, {'migrationId': migration_id},
                                operation_name='abortRepositoryMigration')
        except APIError as e:
            if 'could not resolve to a node' in str(e).lower():
                raise ValidationError(f"Invalid migration id: {migration_id}")
            raise
        return bool(data['abortRepositoryMigration']['success'])

    def _change_migrator_role(self, operation: str, org_id: str, actor: str, actor_type: str) -> bool:
        try:
            data = self.graphql(
                MIGRATOR_ROLE_MUTATION.format(operation=operation),
                {'organizationId': org_id, 'actor': actor, 'actor_type': actor_type},
                operation_name=operation
            )
            return bool(data[operation]['success'])
        except (APIError, KeyError, TypeError) as e:
            self._log_debug(f"{operation} failed: {e}")
            return False

    def grant_migrator_role(self, org_id: str, actor: str, actor_type: str) -> bool:
        return self._change_migrator_role('grantMigratorRole', org_id, actor, actor_type)

    def revoke_migrator_role(self, org_id: str, actor: str, actor_type: str) -> bool:
        return self._change_migrator_role('revokeMigratorRole', org_id, actor, actor_type)

    # Teams

    def create_team(self, org: str, team_name: str) -> Tuple[str, str]:
        data = self.post(f"orgs/{_q(org)}/teams", {'name': team_name, 'privacy': 'closed'})
        return str(data['id']), data['slug']

    def get_teams(self, org: str) -> List[Dict[str, Any]]:
        return [
            {'id': str(team['id']), 'name': team['name'], 'slug': team['slug']}
            for team in self.get_all(f"orgs/{_q(org)}/teams?per_page=100")
        ]

    def get_team_members(self, org: str, team_slug: str) -> List[str]:
        return [member['login'] for member in self.get_all(f"orgs/{_q(org)}/teams/{_q(team_slug)}/members?per_page=100")]

    def remove_team_member(self, org: str, team_slug: str, member: str) -> None:
        self.delete(f"orgs/{_q(org)}/teams/{_q(team_slug)}/memberships/{_q(member)}")

    def get_idp_group_id(self, org: str, group_name: str) -> int:
        for group in self.get_all(f"orgs/{_q(org)}/external-groups", items=lambda data: data.get('groups', [])):
            if group.get('group_name', '').lower() == group_name.lower():
                return int(group['group_id'])
        raise APIError(f"IdP group '{group_name}' was not found in organization '{org}'", status_code=404)

    def add_emu_group_to_team(self, org: str, team_slug: str, group_id: int) -> None:
        self.patch(f"orgs/{_q(org)}/teams/{_q(team_slug)}/external-groups", {'group_id': group_id})

    def add_team_to_repo(self, org: str, repo: str, team_slug: str, role: str) -> None:
        self.put(f"orgs/{_q(org)}/teams/{_q(team_slug)}/repos/{_q(org)}/{_q(repo)}", {'permission': role})

    # Autolinks

    def get_autolinks(self, org: str, repo: str) -> List[Dict[str, Any]]:
        return [
            {'id': link['id'], 'key_prefix': link['key_prefix'], 'url_template': link['url_template']}
            for link in self.get_all(f"repos/{_q(org)}/{_q(repo)}/autolinks")
        ]

    def add_autolink(self, org: str, repo: str, key_prefix: str, url_template: str) -> None:
        if not key_prefix or not key_prefix.strip():
            raise ValidationError("Invalid value for key_prefix")
        if not url_template or not url_template.strip():
            raise ValidationError("Invalid value for url_template")
        self.post(f"repos/{_q(org)}/{_q(repo)}/autolinks", {'key_prefix': key_prefix, 'url_template': url_template})

    def delete_autolink(self, org: str, repo: str, autolink_id: int) -> None:
        self.delete(f"repos/{_q(org)}/{_q(repo)}/autolinks/{autolink_id}")

    # Secret scanning

    def get_secret_scanning_alerts(self, org: str, repo: str) -> List[Dict[str, Any]]:
        return list(self.get_all(f"repos/{_q(org)}/{_q(repo)}/secret-scanning/alerts?per_page=100"))

    def get_secret_scanning_alert_locations(self, org: str, repo: str, alert_number: int) -> List[Dict[str, Any]]:
        return [
            location.get('details', {})
            for location in self.get_all(
                f"repos/{_q(org)}/{_q(repo)}/secret-scanning/alerts/{alert_number}/locations?per_page=100"
            )
        ]

    def update_secret_scanning_alert(self, org: str, repo: str, alert_number: int, state: str,
                                     resolution: Optional[str] = None, resolution_comment: Optional[str] = None) -> None:
        if state not in ('open', 'resolved'):
            raise ValidationError(f"Invalid secret scanning alert state: {state}")

        payload: Dict[str, Any] = {'state': state}
        if state == 'resolved':
            payload['resolution'] = resolution
            payload['resolution_comment'] = resolution_comment
        self.patch(f"repos/{_q(org)}/{_q(repo)}/secret-scanning/alerts/{alert_number}", payload)
