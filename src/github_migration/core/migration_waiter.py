"""
Polling of GitHub migrations until they reach a terminal state.

MigrationWaiter is shared by wait-for-migration and by the migrate-repo and
migrate-org commands when they are not run with --queue-only.
"""

import time
from typing import Callable, Optional

from ..clients.github_client import GitHubClient
from ..exceptions import MigrationFailedError, ValidationError
from ..utils.logging_config import MigrationLogger
from .migration_status import (
    MigrationStatusSnapshot,
    OrganizationMigrationStatus,
    RepositoryMigrationStatus,
    is_organization_migration_id,
    is_repository_migration_id
)

DEFAULT_WAIT_INTERVAL_SECONDS = 60


def log_warnings_count(logger: MigrationLogger, warnings_count: int) -> None:
    if warnings_count == 0:
        logger.info("No warnings encountered during this migration")
    elif warnings_count == 1:
        logger.warning("1 warning encountered during this migration")
    else:
        logger.warning(f"{warnings_count} warnings encountered during this migration")


class MigrationWaiter:
    """
    Waits for a repository (RM_) or organization (OM_) migration to finish.

    The status is fetched once per interval with no timeout. A failed fetch is
    not retried by the waiter; the error reaches the caller straight away.
    """

    def __init__(self, github_client: GitHubClient, logger: MigrationLogger,
                 interval_seconds: int = DEFAULT_WAIT_INTERVAL_SECONDS,
                 sleep: Optional[Callable[[float], None]] = None):
        self.github_client = github_client
        self.logger = logger
        self.interval_seconds = interval_seconds
        self._sleep = sleep or time.sleep

    def wait_for_migration(self, migration_id: str, download_logs_hint: Optional[str] = None) -> MigrationStatusSnapshot:
        """
        Block until the migration succeeds or fails.

        Args:
            migration_id: Handle returned when the migration was queued
            download_logs_hint: Command line suggested next to the log URL

        Returns:
            The final, successful status

        Raises:
            ValidationError: If the handle is neither an RM_ nor an OM_ id
            MigrationFailedError: If the migration ends in a failed state
        """
        if is_repository_migration_id(migration_id):
            fetch = self.github_client.get_migration
            on_terminal = self._finish_repository_migration
            log_pending = self._log_repository_progress
            is_pending = RepositoryMigrationStatus.is_pending
        elif is_organization_migration_id(migration_id):
            fetch = self.github_client.get_organization_migration
            on_terminal = self._finish_organization_migration
            log_pending = self._log_organization_progress
            is_pending = OrganizationMigrationStatus.is_pending
        else:
            raise ValidationError(f"Invalid migration id: {migration_id}")

        self.logger.info(f"Waiting for migration (ID: {migration_id}) to finish...")

        status = fetch(migration_id)
        while is_pending(status.state):
            log_pending(migration_id, status)
            self.logger.info(f"Waiting {self.interval_seconds} seconds...")
            self._sleep(self.interval_seconds)
            status = fetch(migration_id)

        on_terminal(migration_id, status, download_logs_hint)
        return status

    def _log_repository_progress(self, migration_id: str, status: MigrationStatusSnapshot) -> None:
        self.logger.info(f"Migration {migration_id} for {status.repository_name} is {status.state}")

    def _log_organization_progress(self, migration_id: str, status: MigrationStatusSnapshot) -> None:
        if OrganizationMigrationStatus.is_repo_migration(status.state):
            self.logger.info(
                f"Migration {migration_id} is {status.state} - "
                f"{status.completed_repositories_count}/{status.total_repositories_count} repositories completed"
            )
        else:
            self.logger.info(f"Migration {migration_id} is {status.state}")

    def _finish_repository_migration(self, migration_id: str, status: MigrationStatusSnapshot,
                                     download_logs_hint: Optional[str]) -> None:
        succeeded = RepositoryMigrationStatus.is_succeeded(status.state)
        if succeeded:
            self.logger.success(f"Migration {migration_id} succeeded for {status.repository_name}")
        else:
            self.logger.error(f"Migration {migration_id} failed for {status.repository_name}")

        log_warnings_count(self.logger, status.warnings_count)
        self.logger.info(
            f"Migration log available at {status.migration_log_url} "
            f"or by running {download_logs_hint or 'download-logs'}"
        )

        if not succeeded:
            raise MigrationFailedError(
                status.failure_reason or f"Migration {migration_id} failed for {status.repository_name}",
                failure_reason=status.failure_reason,
                migration_log_url=status.migration_log_url
            )

    def _finish_organization_migration(self, migration_id: str, status: MigrationStatusSnapshot,
                                       download_logs_hint: Optional[str]) -> None:
        if OrganizationMigrationStatus.is_succeeded(status.state):
            self.logger.success(f"Migration {migration_id} succeeded")
            return

        raise MigrationFailedError(
            f"Migration {migration_id} failed for {status.source_org_url} -> {status.target_org_name}. "
            f"Failure reason: {status.failure_reason}",
            failure_reason=status.failure_reason
        )
