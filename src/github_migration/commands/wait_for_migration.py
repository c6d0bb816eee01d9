"""
wait-for-migration and abort-migration commands.
"""

from ..config.command_config import AbortMigrationConfig, WaitForMigrationConfig
from ..core.migration_waiter import MigrationWaiter
from .common import create_logger, create_target_github_client


def run_wait_for_migration(args, parser=None):
    """Wait for a queued repository or organization migration to finish.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: migration_id, github_pat, target_api_url, verbose.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Side Effects
    ------------
    - Polls the GitHub GraphQL API once a minute until the migration ends
    - Logs progress, the warnings count and the migration log location

    Raises
    ------
    ValidationError
        If the migration id is missing or not an RM_/OM_ id.
    MigrationFailedError
        If the migration finishes in a failed state.
    """
    config = WaitForMigrationConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    MigrationWaiter(github_client, logger).wait_for_migration(config.migration_id)


def run_abort_migration(args, parser=None):
    """Abort a queued or in-progress repository migration.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: migration_id, github_pat, target_api_url, verbose.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    bool
        True when GitHub accepted the abort request.
    """
    config = AbortMigrationConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    logger.info(f"Aborting migration (ID: {config.migration_id})...")
    if github_client.abort_migration(config.migration_id):
        logger.success(f"Migration {config.migration_id} was cancelled")
        return True

    logger.error(f"Failed to abort migration {config.migration_id}")
    return False
