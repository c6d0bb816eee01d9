"""
Migration state vocabulary and status snapshots.

GitHub reports repository migrations and organization migrations with
different state sets. The predicates here decide which states are terminal
for each kind, and MigrationStatusSnapshot carries one fetched status between
the API client and the poller.
"""

from dataclasses import dataclass
from typing import Optional

REPOSITORY_MIGRATION_PREFIX = 'RM_'
ORGANIZATION_MIGRATION_PREFIX = 'OM_'


class RepositoryMigrationStatus:
    """States of a repository migration (RM_ handles)."""

    QUEUED = 'QUEUED'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    IN_PROGRESS = 'IN_PROGRESS'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'

    PENDING_STATES = frozenset({QUEUED, PENDING_VALIDATION, IN_PROGRESS})

    @classmethod
    def is_pending(cls, state: Optional[str]) -> bool:
        return _normalize(state) in cls.PENDING_STATES

    @classmethod
    def is_succeeded(cls, state: Optional[str]) -> bool:
        return _normalize(state) == cls.SUCCEEDED

    @classmethod
    def is_failed(cls, state: Optional[str]) -> bool:
        # Unknown states count as failures so the poller never spins on them
        return not cls.is_pending(state) and not cls.is_succeeded(state)


class OrganizationMigrationStatus:
    """States of an organization migration (OM_ handles)."""

    QUEUED = 'QUEUED'
    NOT_STARTED = 'NOT_STARTED'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    IN_PROGRESS = 'IN_PROGRESS'
    PRE_REPO_MIGRATION = 'PRE_REPO_MIGRATION'
    REPO_MIGRATION = 'REPO_MIGRATION'
    POST_REPO_MIGRATION = 'POST_REPO_MIGRATION'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'

    PENDING_STATES = frozenset({
        QUEUED, NOT_STARTED, PENDING_VALIDATION, IN_PROGRESS,
        PRE_REPO_MIGRATION, REPO_MIGRATION, POST_REPO_MIGRATION
    })

    @classmethod
    def is_pending(cls, state: Optional[str]) -> bool:
        return _normalize(state) in cls.PENDING_STATES

    @classmethod
    def is_repo_migration(cls, state: Optional[str]) -> bool:
        return _normalize(state) == cls.REPO_MIGRATION

    @classmethod
    def is_succeeded(cls, state: Optional[str]) -> bool:
        return _normalize(state) == cls.SUCCEEDED

    @classmethod
    def is_failed(cls, state: Optional[str]) -> bool:
        return not cls.is_pending(state) and not cls.is_succeeded(state)


class ExportState:
    """States of a Bitbucket Server export job."""

    INITIALISING = 'INITIALISING'
    RUNNING = 'RUNNING'
    ABORTING = 'ABORTING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'
    ABORTED = 'ABORTED'
    TIMED_OUT = 'TIMED_OUT'

    IN_PROGRESS_STATES = frozenset({INITIALISING, RUNNING, ABORTING})
    ERROR_STATES = frozenset({FAILED, ABORTED, TIMED_OUT})

    @classmethod
    def is_in_progress(cls, state: Optional[str]) -> bool:
        return _normalize(state) in cls.IN_PROGRESS_STATES

    @classmethod
    def is_error(cls, state: Optional[str]) -> bool:
        return _normalize(state) in cls.ERROR_STATES


def _normalize(state: Optional[str]) -> str:
    return (state or '').strip().upper()


def is_repository_migration_id(migration_id: Optional[str]) -> bool:
    return bool(migration_id) and migration_id.startswith(REPOSITORY_MIGRATION_PREFIX)


def is_organization_migration_id(migration_id: Optional[str]) -> bool:
    return bool(migration_id) and migration_id.startswith(ORGANIZATION_MIGRATION_PREFIX)


@dataclass
class MigrationStatusSnapshot:
    """
    One fetched migration status.

    Repository migrations fill repository_name, warnings_count and
    migration_log_url. Organization migrations fill the source/target names
    and the repository counters.
    """
    state: str
    failure_reason: Optional[str] = None
    repository_name: Optional[str] = None
    warnings_count: int = 0
    migration_log_url: Optional[str] = None
    source_org_url: Optional[str] = None
    target_org_name: Optional[str] = None
    remaining_repositories_count: Optional[int] = None
    total_repositories_count: Optional[int] = None

    @property
    def completed_repositories_count(self) -> Optional[int]:
        if self.total_repositories_count is None:
            return None
        return self.total_repositories_count - (self.remaining_repositories_count or 0)
