"""
Tests for the repository and organization migration commands.
"""

import pytest
from unittest.mock import patch

from github_migration.commands.migrate_repo import (
    ado_repo_url,
    create_migration_source,
    queue_repository_migration,
    run_ado_migrate_repo,
    run_gei_migrate_repo,
    run_migrate_org
)
from github_migration.exceptions import APIError


@pytest.fixture
def migrate_patches():
    """Patch the client, credential resolver and waiter used by the migrate commands."""
    with patch('github_migration.commands.migrate_repo.GitHubClient') as client_class, \
            patch('github_migration.commands.migrate_repo.CredentialResolver') as resolver_class, \
            patch('github_migration.commands.migrate_repo.MigrationWaiter') as waiter_class:
        resolver = resolver_class.return_value
        resolver.target_github_pat.return_value = 'target-pat'
        resolver.source_github_pat.return_value = 'source-pat'
        resolver.ado_pat.return_value = 'ado-pat'

        client = client_class.return_value
        client.get_organization_id.return_value = 'O_1'
        client.create_ado_migration_source.return_value = 'MS_ado'
        client.create_ghec_migration_source.return_value = 'MS_ghec'
        client.start_migration.return_value = 'RM_1'
        client.get_enterprise_id.return_value = 'E_1'
        client.start_organization_migration.return_value = 'OM_1'

        yield client_class, resolver, waiter_class


ADO_ARGS = ['ado2gh', 'migrate-repo', '--ado-org', 'contoso', '--ado-team-project', 'My Project',
            '--ado-repo', 'api', '--github-org', 'contoso-gh', '--github-repo', 'api']


class TestHelpers:
    """Test shared migration helpers."""

    def test_ado_repo_url_is_escaped(self):
        assert ado_repo_url('contoso', 'My Project', 'api') == 'https://dev.azure.com/contoso/My%20Project/_git/api'

    def test_ado_repo_url_custom_server(self):
        assert ado_repo_url('c', 'p', 'r', 'https://ado.local/tfs/') == 'https://ado.local/tfs/c/p/_git/r'

    def test_migration_source_permission_hint(self):
        """Test that missing permissions are explained to the operator."""
        def create():
            raise APIError("user does not have the correct permissions to execute `CreateMigrationSource`")

        with pytest.raises(APIError, match="you are a member of the `org` organization"):
            create_migration_source(create, 'org')

    def test_already_existing_repository(self, mock_logger):
        """Test that an existing target repository is a warning, not an error."""
        def start():
            raise APIError("A repository called org/repo already exists")

        assert queue_repository_migration(start, 'org', 'repo', mock_logger) is None
        mock_logger.warning.assert_called_once()

    def test_other_start_errors_propagate(self, mock_logger):
        def start():
            raise APIError("boom")

        with pytest.raises(APIError, match="boom"):
            queue_repository_migration(start, 'org', 'repo', mock_logger)


class TestAdoMigrateRepo:
    """Test ado2gh migrate-repo."""

    def test_queues_and_waits(self, parse_args, command_logger, migrate_patches):
        client_class, _, waiter_class = migrate_patches
        client = client_class.return_value

        assert run_ado_migrate_repo(parse_args(ADO_ARGS)) == 'RM_1'

        client.create_ado_migration_source.assert_called_once_with('O_1', None)
        client.start_migration.assert_called_once_with(
            'MS_ado', 'https://dev.azure.com/contoso/My%20Project/_git/api', 'O_1', 'api', 'ado-pat', 'target-pat',
            target_repo_visibility=None
        )
        waiter_class.return_value.wait_for_migration.assert_called_once_with(
            'RM_1', '`gh-migrate ado2gh download-logs --github-org contoso-gh --github-repo api`'
        )
        command_logger.info.assert_any_call("A repository migration (ID: RM_1) was successfully queued.")

    def test_queue_only_does_not_wait(self, parse_args, command_logger, migrate_patches):
        _, _, waiter_class = migrate_patches

        assert run_ado_migrate_repo(parse_args(ADO_ARGS + ['--queue-only'])) == 'RM_1'

        waiter_class.assert_not_called()

    def test_existing_repository_skips_wait(self, parse_args, command_logger, migrate_patches):
        client_class, _, waiter_class = migrate_patches
        client_class.return_value.start_migration.side_effect = APIError(
            "A repository called contoso-gh/api already exists"
        )

        assert run_ado_migrate_repo(parse_args(ADO_ARGS)) is None
        waiter_class.assert_not_called()


class TestGeiMigrateRepo:
    """Test gei migrate-repo."""

    def test_source_and_target_tokens(self, parse_args, command_logger, migrate_patches):
        client_class, resolver, waiter_class = migrate_patches
        args = parse_args(['gei', 'migrate-repo', '--github-source-org', 'src', '--source-repo', 'api',
                           '--github-target-org', 'dst', '--skip-releases', '--queue-only'])

        run_gei_migrate_repo(args)

        client_class.return_value.start_migration.assert_called_once_with(
            'MS_ghec', 'https://github.com/src/api', 'O_1', 'api', 'source-pat', 'target-pat',
            skip_releases=True, target_repo_visibility=None
        )
        resolver.source_github_pat.assert_called_once_with(None)


class TestMigrateOrg:
    """Test gei migrate-org."""

    def test_queues_and_waits(self, parse_args, command_logger, migrate_patches):
        client_class, _, waiter_class = migrate_patches
        args = parse_args(['gei', 'migrate-org', '--github-source-org', 'src', '--github-target-org', 'dst',
                           '--github-target-enterprise', 'contoso'])

        assert run_migrate_org(args) == 'OM_1'

        client_class.return_value.start_organization_migration.assert_called_once_with(
            'https://github.com/src', 'dst', 'E_1', 'source-pat'
        )
        waiter_class.return_value.wait_for_migration.assert_called_once_with('OM_1')

    def test_queue_only(self, parse_args, command_logger, migrate_patches):
        _, _, waiter_class = migrate_patches
        args = parse_args(['gei', 'migrate-org', '--github-source-org', 'src', '--github-target-org', 'dst',
                           '--github-target-enterprise', 'contoso', '--queue-only'])

        run_migrate_org(args)

        waiter_class.assert_not_called()
        command_logger.info.assert_any_call("An organization migration (ID: OM_1) was successfully queued.")
