"""
Commands that act on the Azure DevOps side of a migration.
"""

from ..config.command_config import AdoRepoConfig, ShareServiceConnectionConfig
from ..exceptions import APIError
from .common import create_ado_client, create_logger

PROJECT_VALID_USERS_GROUP = 'Project Valid Users'


def run_lock_ado_repo(args, parser=None):
    """Make an Azure Repos repository read-only for everyone in the project.

    Adds a deny entry for the Project Valid Users group on the repository's
    Git permissions.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: ado_org, ado_team_project, ado_repo, ado_pat,
        ado_server_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.
    """
    config = AdoRepoConfig.from_args(args)
    logger = create_logger(config)
    ado_client = create_ado_client(config, logger)

    logger.info("Locking repo...")

    team_project_id = ado_client.get_team_project_id(config.ado_org, config.ado_team_project)
    repo_id = ado_client.get_repo_id(config.ado_org, config.ado_team_project, config.ado_repo)
    descriptor = ado_client.get_identity_descriptor(config.ado_org, team_project_id, PROJECT_VALID_USERS_GROUP)

    ado_client.lock_repo(config.ado_org, team_project_id, repo_id, descriptor)
    logger.success("Repo successfully locked")


def run_disable_ado_repo(args, parser=None):
    """Disable an Azure Repos repository; a repository already disabled is left alone.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: ado_org, ado_team_project, ado_repo, ado_pat,
        ado_server_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.
    """
    config = AdoRepoConfig.from_args(args)
    logger = create_logger(config)
    ado_client = create_ado_client(config, logger)

    logger.info("Disabling repo...")

    repos = ado_client.get_repos(config.ado_org, config.ado_team_project)
    repo = next((r for r in repos if r['name'] == config.ado_repo), None)
    if repo is None:
        raise APIError(f"Repository '{config.ado_repo}' was not found in {config.ado_org}/{config.ado_team_project}",
                       status_code=404)

    if repo['is_disabled']:
        logger.success(f"Repo '{config.ado_org}/{config.ado_team_project}/{config.ado_repo}' is already disabled - No action will be performed")
        return

    ado_client.disable_repo(config.ado_org, config.ado_team_project, repo['id'])
    logger.success("Repo successfully disabled")


def run_share_service_connection(args, parser=None):
    """Share a GitHub service connection with another team project.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: ado_org, ado_team_project, service_connection_id,
        ado_pat, ado_server_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.
    """
    config = ShareServiceConnectionConfig.from_args(args)
    logger = create_logger(config)
    ado_client = create_ado_client(config, logger)

    logger.info("Sharing Service Connection...")

    team_project_id = ado_client.get_team_project_id(config.ado_org, config.ado_team_project)

    if ado_client.contains_service_connection(config.ado_org, config.ado_team_project, config.service_connection_id):
        logger.success("Service connection already shared with team project")
        return

    ado_client.share_service_connection(config.ado_org, config.ado_team_project, team_project_id,
                                        config.service_connection_id)
    logger.success("Successfully shared service connection")
