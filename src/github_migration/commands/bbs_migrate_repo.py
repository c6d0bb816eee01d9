"""
bbs2gh migrate-repo command.

Runs in up to two phases: exporting the repository on the Bitbucket Server
instance, and importing an archive that has already been uploaded somewhere
GitHub can read it from.
"""

import time
from typing import Optional

from ..clients.bbs_client import BbsClient, repo_url
from ..clients.github_client import GitHubClient
from ..config.command_config import BbsMigrateRepoConfig
from ..config.credentials import BBS_PASSWORD, BBS_USERNAME, CredentialResolver
from ..core.migration_status import ExportState
from ..core.migration_waiter import MigrationWaiter
from ..exceptions import ConfigurationError, MigrationFailedError, ValidationError
from ..utils.logging_config import MigrationLogger
from .common import create_logger, download_logs_hint
from .migrate_repo import create_migration_source, queue_repository_migration

NOT_USED_URL = 'https://not-used'


def bbs_repo_url(config: BbsMigrateRepoConfig) -> str:
    if config.bbs_server_url and config.bbs_project and config.bbs_repo:
        return repo_url(config.bbs_server_url, config.bbs_project, config.bbs_repo)
    return NOT_USED_URL


def generate_archive(bbs_client: BbsClient, project_key: str, slug: str, logger: MigrationLogger,
                     poll_interval_seconds: int = 10, sleep=None) -> int:
    """
    Export a repository and wait for the export job to finish.

    Returns:
        The export id

    Raises:
        MigrationFailedError: If the export ends in an error state
    """
    sleep = sleep or time.sleep

    export_id = bbs_client.start_export(project_key, slug)
    logger.info(f"Export started. Export ID: {export_id}")

    state, message, percentage = bbs_client.get_export(export_id)
    while ExportState.is_in_progress(state):
        logger.info(f"Export status: {state}; {percentage}% complete")
        sleep(poll_interval_seconds)
        state, message, percentage = bbs_client.get_export(export_id)

    if ExportState.is_error(state):
        raise MigrationFailedError(f"Bitbucket export failed --> State: {state}; Message: {message}",
                                   failure_reason=message)

    logger.info(
        f"Export completed. Your migration archive should be ready on your instance at "
        f"$BITBUCKET_SHARED_HOME/data/migration/export/Bitbucket_export_{export_id}.tar"
    )
    return export_id


def _resolve_bbs_credential(resolve, explicit: Optional[str], env_name: str, flag: str, label: str) -> str:
    try:
        return resolve(explicit)
    except ConfigurationError:
        raise ValidationError(f"BBS {label} must be either set as {env_name} environment variable or passed as {flag}.")


def run_bbs_migrate_repo(args, parser=None):
    """Export a Bitbucket Server repository and/or import its archive into GitHub.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: bbs_server_url, bbs_project, bbs_repo, bbs_username,
        bbs_password, no_ssl_verify, archive_url, github_org, github_repo,
        target_repo_visibility, queue_only, github_pat, target_api_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    str or None
        The migration id when an import was queued.

    Raises
    ------
    ValidationError
        If Bitbucket credentials are missing for an export.
    MigrationFailedError
        If the export or the migration fails.
    """
    config = BbsMigrateRepoConfig.from_args(args)
    logger = create_logger(config)
    credentials = CredentialResolver(logger)

    if config.should_generate_archive():
        username = _resolve_bbs_credential(credentials.bbs_username, config.bbs_username, BBS_USERNAME, '--bbs-username', 'username')
        password = _resolve_bbs_credential(credentials.bbs_password, config.bbs_password, BBS_PASSWORD, '--bbs-password', 'password')

        bbs_client = BbsClient(config.bbs_server_url, username, password, logger=logger,
                               verify_ssl=not config.no_ssl_verify)
        generate_archive(bbs_client, config.bbs_project, config.bbs_repo, logger,
                         poll_interval_seconds=config.export_poll_interval_seconds)

    if not config.should_import_archive():
        return None

    logger.info("Importing Archive...")

    github_pat = credentials.target_github_pat(config.github_pat)
    github_client = GitHubClient(github_pat, api_url=config.target_api_url, logger=logger)

    org_id = github_client.get_organization_id(config.github_org)
    source_id = create_migration_source(lambda: github_client.create_bbs_migration_source(org_id), config.github_org)

    migration_id = queue_repository_migration(
        lambda: github_client.start_bbs_migration(
            source_id, bbs_repo_url(config), org_id, config.github_repo, github_pat, config.archive_url,
            target_repo_visibility=config.target_repo_visibility
        ),
        config.github_org, config.github_repo, logger
    )
    if migration_id is None or config.queue_only:
        return migration_id

    MigrationWaiter(github_client, logger).wait_for_migration(
        migration_id, download_logs_hint('bbs2gh', config.github_org, config.github_repo)
    )
    return migration_id
