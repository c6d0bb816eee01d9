"""
Helpers shared by the command functions: logger setup, credential
resolution and client construction.
"""

from typing import Optional

from ..clients.ado_client import AdoClient
from ..clients.github_client import GitHubClient
from ..config.command_config import CommandConfig
from ..config.credentials import CredentialResolver
from ..utils.logging_config import MigrationLogger

ALREADY_EXISTS_MESSAGE = "A repository called {org}/{repo} already exists"
PERMISSIONS_ERROR_FRAGMENT = "not have the correct permissions to execute"


def create_logger(config: CommandConfig) -> MigrationLogger:
    return MigrationLogger(log_level='INFO', log_file=config.log_file, verbose=config.verbose)


def create_target_github_client(config, logger: MigrationLogger,
                                credentials: Optional[CredentialResolver] = None,
                                explicit_token: Optional[str] = None) -> GitHubClient:
    """Build the client for the target GitHub organization from --github-pat or GH_PAT."""
    credentials = credentials or CredentialResolver(logger)
    token = credentials.target_github_pat(explicit_token or getattr(config, 'github_pat', None))
    return GitHubClient(token, api_url=getattr(config, 'target_api_url', None), logger=logger)


def create_ado_client(config, logger: MigrationLogger,
                      credentials: Optional[CredentialResolver] = None) -> AdoClient:
    credentials = credentials or CredentialResolver(logger)
    token = credentials.ado_pat(config.ado_pat)
    return AdoClient(token, base_url=config.ado_server_url, logger=logger)


def download_logs_hint(group: str, github_org: str, github_repo: str) -> str:
    return f"`gh-migrate {group} download-logs --github-org {github_org} --github-repo {github_repo}`"


def is_already_exists_error(error: Exception, github_org: str, github_repo: str) -> bool:
    return str(error) == ALREADY_EXISTS_MESSAGE.format(org=github_org, repo=github_repo)


def log_repo_already_exists(logger: MigrationLogger, github_org: str, github_repo: str) -> None:
    logger.warning(
        f"The Org '{github_org}' already contains a repository with the name '{github_repo}'. "
        f"No operation will be performed"
    )


def insufficient_permissions_message(github_org: str) -> str:
    return (
        f". Please check that:\n"
        f"  (a) you are a member of the `{github_org}` organization,\n"
        f"  (b) you are an organization owner or you have been granted the migrator role and\n"
        f"  (c) your personal access token has the correct scopes.\n"
        f"For more information, see "
        f"https://docs.github.com/en/migrations/using-github-enterprise-importer/preparing-to-migrate-with-github-enterprise-importer/managing-access-for-github-enterprise-importer."
    )
