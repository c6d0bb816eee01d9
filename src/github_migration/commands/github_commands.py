"""
Commands that configure the target GitHub organization: teams, team access,
the migrator role, autolinks, and secret scanning alert resolutions.
"""

from urllib.parse import quote

from ..clients.ado_client import DEFAULT_ADO_SERVER_URL
from ..clients.github_client import GitHubClient
from ..config.command_config import (
    AddTeamToRepoConfig,
    ConfigureAutolinkConfig,
    CreateTeamConfig,
    MigrateSecretAlertsConfig,
    MigratorRoleConfig
)
from ..config.credentials import CredentialResolver
from ..core.secret_scanning import SecretScanningAlertService
from .common import create_logger, create_target_github_client

AUTOLINK_KEY_PREFIX = 'AB#'


def run_create_team(args, parser=None):
    """Create a GitHub team, optionally linked to an IdP group.

    An existing team with the same name is reused. When --idp-group is given
    the team's direct members are removed and the group is linked instead.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_org, team_name, idp_group, github_pat,
        target_api_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    str
        The team slug.
    """
    config = CreateTeamConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    logger.info("Creating GitHub team...")

    existing = [team for team in github_client.get_teams(config.github_org) if team['name'] == config.team_name]
    if existing:
        team_slug = existing[0]['slug']
        logger.success(f"Team '{config.team_name}' already exists - New team will not be created")
    else:
        _, team_slug = github_client.create_team(config.github_org, config.team_name)
        logger.success("Successfully created team")

    if not config.idp_group:
        logger.info("No IdP Group provided, skipping the IdP linking step")
        return team_slug

    for member in github_client.get_team_members(config.github_org, team_slug):
        github_client.remove_team_member(config.github_org, team_slug, member)

    group_id = github_client.get_idp_group_id(config.github_org, config.idp_group)
    github_client.add_emu_group_to_team(config.github_org, team_slug, group_id)
    logger.success("Successfully linked team to Idp group")
    return team_slug


def run_add_team_to_repo(args, parser=None):
    """Grant a team a role on a repository.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_org, github_repo, team, role.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.
    """
    config = AddTeamToRepoConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    logger.info("Adding team to repo...")

    teams = github_client.get_teams(config.github_org)
    match = next((team for team in teams if team['name'] == config.team or team['slug'] == config.team), None)
    team_slug = match['slug'] if match else config.team

    github_client.add_team_to_repo(config.github_org, config.github_repo, team_slug, config.role)
    logger.success("Successfully added team to repo")


def _change_migrator_role(args, grant: bool) -> bool:
    config = MigratorRoleConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    action = 'Granting' if grant else 'Revoking'
    logger.info(f"{action} migrator role ...")

    org_id = github_client.get_organization_id(config.github_org)
    if grant:
        success = github_client.grant_migrator_role(org_id, config.actor, config.actor_type)
    else:
        success = github_client.revoke_migrator_role(org_id, config.actor, config.actor_type)

    verb = 'granted' if grant else 'revoked'
    if success:
        logger.success(f"Migrator role successfully {verb} for the {config.actor_type} \"{config.actor}\"")
    else:
        logger.error(f"Migrator role couldn't be {verb} for the {config.actor_type} \"{config.actor}\"")
    return success


def run_grant_migrator_role(args, parser=None):
    """Grant the migrator role to a user or team.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_org, actor, actor_type (USER or TEAM).
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    bool
        Whether GitHub reported success.
    """
    return _change_migrator_role(args, grant=True)


def run_revoke_migrator_role(args, parser=None):
    """Revoke the migrator role from a user or team; see run_grant_migrator_role."""
    return _change_migrator_role(args, grant=False)


def autolink_url_template(ado_org: str, ado_team_project: str, ado_server_url: str = None) -> str:
    server_url = (ado_server_url or DEFAULT_ADO_SERVER_URL).rstrip('/')
    return f"{server_url}/{quote(ado_org, safe='')}/{quote(ado_team_project, safe='')}/_workitems/edit/<num>/"


def run_configure_autolink(args, parser=None):
    """Link AB#<id> references in a repository to Azure Boards work items.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: github_org, github_repo, ado_org, ado_team_project.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Side Effects
    ------------
    - Deletes an existing AB# autolink whose URL template differs
    - Creates the AB# autolink unless an identical one exists
    """
    config = ConfigureAutolinkConfig.from_args(args)
    logger = create_logger(config)
    github_client = create_target_github_client(config, logger)

    logger.info("Configuring Autolink Reference...")

    url_template = autolink_url_template(config.ado_org, config.ado_team_project, config.ado_server_url)
    autolinks = github_client.get_autolinks(config.github_org, config.github_repo)

    if any(link['key_prefix'] == AUTOLINK_KEY_PREFIX and link['url_template'] == url_template for link in autolinks):
        logger.success(
            f"Autolink reference already exists for key_prefix: '{AUTOLINK_KEY_PREFIX}'. No operation will be performed"
        )
        return

    stale = next((link for link in autolinks if link['key_prefix'] == AUTOLINK_KEY_PREFIX), None)
    if stale is not None:
        logger.info(f"Autolink reference already exists for key_prefix: '{AUTOLINK_KEY_PREFIX}', but the url template is incorrect")
        logger.info(f"Deleting existing Autolink reference for key_prefix: '{AUTOLINK_KEY_PREFIX}' before creating a new Autolink reference")
        github_client.delete_autolink(config.github_org, config.github_repo, stale['id'])

    github_client.add_autolink(config.github_org, config.github_repo, AUTOLINK_KEY_PREFIX, url_template)
    logger.success("Successfully configured autolink references")


def run_migrate_secret_alerts(args, parser=None):
    """Copy secret scanning alert resolutions to the migrated repository.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: source_org, source_repo, target_org, target_repo,
        github_source_pat, github_target_pat, target_api_url, dry_run.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    dict
        Counters from SecretScanningAlertService.
    """
    config = MigrateSecretAlertsConfig.from_args(args)
    logger = create_logger(config)
    credentials = CredentialResolver(logger)

    target_pat = credentials.target_github_pat(config.github_target_pat or config.github_pat)
    source_pat = credentials.source_github_pat(config.github_source_pat)

    source_client = GitHubClient(source_pat, logger=logger)
    target_client = GitHubClient(target_pat, api_url=config.target_api_url, logger=logger)

    service = SecretScanningAlertService(source_client, target_client, logger)
    stats = service.migrate_secret_scanning_alerts(
        config.source_org, config.source_repo, config.target_org, config.target_repo, dry_run=config.dry_run
    )
    logger.success("Secret scanning alerts migration finished")
    return stats
