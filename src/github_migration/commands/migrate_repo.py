"""
Repository and organization migration commands for the ado2gh and gei groups.

Each queues a migration through the GitHub GraphQL API and, unless
--queue-only is given, waits for it with MigrationWaiter.
"""

from typing import Callable, Optional
from urllib.parse import quote

from ..clients.ado_client import DEFAULT_ADO_SERVER_URL
from ..clients.github_client import GitHubClient
from ..config.command_config import AdoMigrateRepoConfig, GeiMigrateRepoConfig, MigrateOrgConfig
from ..config.credentials import CredentialResolver
from ..core.migration_waiter import MigrationWaiter
from ..exceptions import APIError
from ..utils.logging_config import MigrationLogger
from .common import (
    PERMISSIONS_ERROR_FRAGMENT,
    create_logger,
    download_logs_hint,
    insufficient_permissions_message,
    is_already_exists_error,
    log_repo_already_exists
)

GITHUB_URL = 'https://github.com'


def ado_repo_url(ado_org: str, ado_team_project: str, ado_repo: str, ado_server_url: Optional[str] = None) -> str:
    server_url = (ado_server_url or DEFAULT_ADO_SERVER_URL).rstrip('/')
    return f"{server_url}/{quote(ado_org, safe='')}/{quote(ado_team_project, safe='')}/_git/{quote(ado_repo, safe='')}"


def create_migration_source(create: Callable[[], str], github_org: str) -> str:
    """Run a CreateMigrationSource call, explaining permission failures."""
    try:
        return create()
    except APIError as e:
        if PERMISSIONS_ERROR_FRAGMENT in str(e):
            raise APIError(f"{e}{insufficient_permissions_message(github_org)}", status_code=e.status_code) from e
        raise


def queue_repository_migration(start: Callable[[], str], github_org: str, github_repo: str,
                               logger: MigrationLogger) -> Optional[str]:
    """
    Start a repository migration.

    Returns:
        The migration id, or None when the target repository already exists
    """
    try:
        migration_id = start()
    except APIError as e:
        if is_already_exists_error(e, github_org, github_repo):
            log_repo_already_exists(logger, github_org, github_repo)
            return None
        raise

    logger.info(f"A repository migration (ID: {migration_id}) was successfully queued.")
    return migration_id


def run_ado_migrate_repo(args, parser=None):
    """Migrate one Azure Repos repository to GitHub.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: ado_org, ado_team_project, ado_repo, github_org,
        github_repo, target_repo_visibility, queue_only, tokens and URLs.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    str or None
        The migration id, or None when the target repository already exists.

    Raises
    ------
    MigrationFailedError
        If the migration is waited for and fails.
    """
    config = AdoMigrateRepoConfig.from_args(args)
    logger = create_logger(config)
    credentials = CredentialResolver(logger)

    logger.info("Migrating Repo...")

    github_pat = credentials.target_github_pat(config.github_pat)
    ado_pat = credentials.ado_pat(config.ado_pat)
    github_client = GitHubClient(github_pat, api_url=config.target_api_url, logger=logger)

    source_url = ado_repo_url(config.ado_org, config.ado_team_project, config.ado_repo, config.ado_server_url)
    org_id = github_client.get_organization_id(config.github_org)
    source_id = create_migration_source(
        lambda: github_client.create_ado_migration_source(org_id, config.ado_server_url), config.github_org
    )

    migration_id = queue_repository_migration(
        lambda: github_client.start_migration(
            source_id, source_url, org_id, config.github_repo, ado_pat, github_pat,
            target_repo_visibility=config.target_repo_visibility
        ),
        config.github_org, config.github_repo, logger
    )
    if migration_id is None or config.queue_only:
        return migration_id

    MigrationWaiter(github_client, logger).wait_for_migration(
        migration_id, download_logs_hint('ado2gh', config.github_org, config.github_repo)
    )
    return migration_id


def run_gei_migrate_repo(args, parser=None):
    """Migrate one repository between GitHub organizations.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_source_org, source_repo, github_target_org,
        target_repo, github_source_pat, github_target_pat, skip_releases,
        target_repo_visibility, queue_only.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    str or None
        The migration id, or None when the target repository already exists.
    """
    config = GeiMigrateRepoConfig.from_args(args)
    logger = create_logger(config)
    credentials = CredentialResolver(logger)

    logger.info("Migrating Repo...")

    target_pat = credentials.target_github_pat(config.github_target_pat or config.github_pat)
    source_pat = credentials.source_github_pat(config.github_source_pat)
    github_client = GitHubClient(target_pat, api_url=config.target_api_url, logger=logger)

    source_url = f"{GITHUB_URL}/{quote(config.github_source_org, safe='')}/{quote(config.source_repo, safe='')}"
    org_id = github_client.get_organization_id(config.github_target_org)
    source_id = create_migration_source(
        lambda: github_client.create_ghec_migration_source(org_id), config.github_target_org
    )

    migration_id = queue_repository_migration(
        lambda: github_client.start_migration(
            source_id, source_url, org_id, config.target_repo, source_pat, target_pat,
            skip_releases=config.skip_releases,
            target_repo_visibility=config.target_repo_visibility
        ),
        config.github_target_org, config.target_repo, logger
    )
    if migration_id is None or config.queue_only:
        return migration_id

    MigrationWaiter(github_client, logger).wait_for_migration(
        migration_id, download_logs_hint('gei', config.github_target_org, config.target_repo)
    )
    return migration_id


def run_migrate_org(args, parser=None):
    """Migrate a whole GitHub organization into an enterprise.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_source_org, github_target_org,
        github_target_enterprise, github_source_pat, github_target_pat,
        queue_only.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    str
        The organization migration id (OM_...).
    """
    config = MigrateOrgConfig.from_args(args)
    logger = create_logger(config)
    credentials = CredentialResolver(logger)

    logger.info("Migrating Org...")

    target_pat = credentials.target_github_pat(config.github_target_pat or config.github_pat)
    source_pat = credentials.source_github_pat(config.github_source_pat)
    github_client = GitHubClient(target_pat, api_url=config.target_api_url, logger=logger)

    source_org_url = f"{GITHUB_URL}/{quote(config.github_source_org, safe='')}"
    enterprise_id = github_client.get_enterprise_id(config.github_target_enterprise)
    migration_id = github_client.start_organization_migration(
        source_org_url, config.github_target_org, enterprise_id, source_pat
    )

    if config.queue_only:
        logger.info(f"An organization migration (ID: {migration_id}) was successfully queued.")
        return migration_id

    MigrationWaiter(github_client, logger).wait_for_migration(migration_id)
    return migration_id
