"""
Tests for the migration state predicates and status snapshots.
"""

import pytest

from github_migration.core.migration_status import (
    ExportState,
    MigrationStatusSnapshot,
    OrganizationMigrationStatus,
    RepositoryMigrationStatus,
    is_organization_migration_id,
    is_repository_migration_id
)


class TestRepositoryMigrationStatus:
    """Test terminal-state predicates for repository migrations."""

    @pytest.mark.parametrize('state', ['QUEUED', 'PENDING_VALIDATION', 'IN_PROGRESS', 'in_progress'])
    def test_pending_states(self, state):
        """Test that queued and in-progress states keep the poller waiting."""
        assert RepositoryMigrationStatus.is_pending(state)
        assert not RepositoryMigrationStatus.is_failed(state)

    def test_succeeded(self):
        """Test the success state."""
        assert RepositoryMigrationStatus.is_succeeded('SUCCEEDED')
        assert not RepositoryMigrationStatus.is_pending('SUCCEEDED')
        assert not RepositoryMigrationStatus.is_failed('SUCCEEDED')

    @pytest.mark.parametrize('state', ['FAILED', 'FAILED_VALIDATION', 'SOMETHING_NEW', None])
    def test_failed_states(self, state):
        """Test that failures and unknown states are terminal failures."""
        assert RepositoryMigrationStatus.is_failed(state)

    def test_org_only_states_are_not_pending(self):
        """Test that organization sub-states are not repository pending states."""
        assert not RepositoryMigrationStatus.is_pending('REPO_MIGRATION')


class TestOrganizationMigrationStatus:
    """Test terminal-state predicates for organization migrations."""

    @pytest.mark.parametrize('state', [
        'QUEUED', 'NOT_STARTED', 'PENDING_VALIDATION', 'IN_PROGRESS',
        'PRE_REPO_MIGRATION', 'REPO_MIGRATION', 'POST_REPO_MIGRATION'
    ])
    def test_pending_states(self, state):
        """Test every non-terminal organization state."""
        assert OrganizationMigrationStatus.is_pending(state)

    def test_repo_migration_sub_state(self):
        """Test that REPO_MIGRATION is recognised for the progress counter."""
        assert OrganizationMigrationStatus.is_repo_migration('REPO_MIGRATION')
        assert not OrganizationMigrationStatus.is_repo_migration('IN_PROGRESS')

    def test_failed(self):
        """Test organization failure states."""
        assert OrganizationMigrationStatus.is_failed('FAILED')
        assert OrganizationMigrationStatus.is_failed('FAILED_VALIDATION')
        assert not OrganizationMigrationStatus.is_failed('SUCCEEDED')


class TestExportState:
    """Test Bitbucket Server export states."""

    def test_in_progress(self):
        """Test states that keep the export poller waiting."""
        assert ExportState.is_in_progress('INITIALISING')
        assert ExportState.is_in_progress('RUNNING')
        assert not ExportState.is_in_progress('COMPLETED')

    def test_error(self):
        """Test error states of an export."""
        assert ExportState.is_error('FAILED')
        assert ExportState.is_error('ABORTED')
        assert ExportState.is_error('TIMED_OUT')
        assert not ExportState.is_error('COMPLETED')


class TestMigrationIds:
    """Test handle prefix dispatch helpers."""

    def test_repository_id(self):
        """Test RM_ handles."""
        assert is_repository_migration_id('RM_123')
        assert not is_repository_migration_id('OM_123')
        assert not is_repository_migration_id(None)

    def test_organization_id(self):
        """Test OM_ handles."""
        assert is_organization_migration_id('OM_123')
        assert not is_organization_migration_id('RM_123')
        assert not is_organization_migration_id('')


class TestMigrationStatusSnapshot:
    """Test derived values of a status snapshot."""

    def test_completed_repositories_count(self):
        """Test completed count derived as total minus remaining."""
        status = MigrationStatusSnapshot(state='REPO_MIGRATION', remaining_repositories_count=3,
                                         total_repositories_count=10)
        assert status.completed_repositories_count == 7

    def test_completed_repositories_count_without_total(self):
        """Test that the count is unknown without a total."""
        status = MigrationStatusSnapshot(state='QUEUED')
        assert status.completed_repositories_count is None
