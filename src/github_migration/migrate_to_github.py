#!/usr/bin/env python3
"""
GitHub Migration Toolkit

Command-line tool that drives GitHub Enterprise Importer migrations from
Azure DevOps, Bitbucket Server and other GitHub organizations, and the
follow-up work around them (pipelines, teams, autolinks, secret alerts).

Command groups
--------------
ado2gh    Azure DevOps to GitHub
bbs2gh    Bitbucket Server to GitHub
gei       GitHub to GitHub

Every group also carries the shared commands wait-for-migration,
abort-migration, download-logs, create-team, grant-migrator-role and
revoke-migrator-role.

Credentials
-----------
Tokens are read from the command line first, then from the environment
(GH_PAT, GH_SOURCE_PAT, ADO_PAT, BBS_USERNAME, BBS_PASSWORD), or from a .env
file in the working directory. Token values are never written to the logs.
"""

import argparse
import logging
import sys

from github_migration.commands.ado_commands import (
    run_disable_ado_repo,
    run_lock_ado_repo,
    run_share_service_connection
)
from github_migration.commands.bbs_migrate_repo import run_bbs_migrate_repo
from github_migration.commands.download_logs import run_download_logs
from github_migration.commands.github_commands import (
    run_add_team_to_repo,
    run_configure_autolink,
    run_create_team,
    run_grant_migrator_role,
    run_migrate_secret_alerts,
    run_revoke_migrator_role
)
from github_migration.commands.migrate_repo import run_ado_migrate_repo, run_gei_migrate_repo, run_migrate_org
from github_migration.commands.rewire_pipeline import run_rewire_pipeline, run_test_pipeline
from github_migration.commands.wait_for_migration import run_abort_migration, run_wait_for_migration
from github_migration.exceptions import MigrationError
from github_migration.utils.logging_config import GENERIC_ERROR_MESSAGE, LOGGER_NAME, redact_message

VISIBILITY_CHOICES = ['public', 'private', 'internal']


def _add_common_arguments(parser):
    parser.add_argument('--verbose', action='store_true', help='Show debug output')
    parser.add_argument('--log-file', help='Also write debug output to this file')


def _add_github_arguments(parser):
    parser.add_argument('--github-pat', help='Target GitHub personal access token (defaults to GH_PAT)')
    parser.add_argument('--target-api-url', help='API URL of the target GitHub instance (defaults to https://api.github.com)')


def _add_ado_arguments(parser):
    parser.add_argument('--ado-pat', help='Azure DevOps personal access token (defaults to ADO_PAT)')
    parser.add_argument('--ado-server-url', help='Azure DevOps Server URL (defaults to https://dev.azure.com)')


def _add_command(subparsers, name, help_text, handler, github=True, ado=False):
    parser = subparsers.add_parser(name, help=help_text, description=help_text)
    _add_common_arguments(parser)
    if github:
        _add_github_arguments(parser)
    if ado:
        _add_ado_arguments(parser)
    parser.set_defaults(handler=handler)
    return parser


def _add_shared_commands(subparsers, group):
    wait_parser = _add_command(subparsers, 'wait-for-migration',
                               'Wait for a repository (RM_) or organization (OM_) migration to finish',
                               run_wait_for_migration)
    wait_parser.add_argument('--migration-id', required=True, help='Migration id returned when it was queued')

    abort_parser = _add_command(subparsers, 'abort-migration', 'Abort a repository migration', run_abort_migration)
    abort_parser.add_argument('--migration-id', required=True, help='Repository migration id (RM_...)')

    logs_parser = _add_command(subparsers, 'download-logs', 'Download the log of a repository migration',
                               run_download_logs)
    logs_parser.add_argument('--migration-id', help='Repository migration id (RM_...)')
    logs_parser.add_argument('--github-org', help='Target organization, used with --github-repo')
    logs_parser.add_argument('--github-repo', help='Target repository, used with --github-org')
    logs_parser.add_argument('--migration-log-file', help='Output file (defaults to migration-log-<org>-<repo>-<id>.log)')
    logs_parser.add_argument('--overwrite', action='store_true', help='Replace an existing log file')
    logs_parser.add_argument('--max-attempts', type=int, default=6, help='Times to check for the log URL (default: 6)')
    logs_parser.add_argument('--retry-delay-seconds', type=int, default=10,
                             help='Delay between checks for the log URL (default: 10)')

    team_parser = _add_command(subparsers, 'create-team', 'Create a team, optionally linked to an IdP group',
                               run_create_team)
    team_parser.add_argument('--github-org', required=True)
    team_parser.add_argument('--team-name', required=True)
    team_parser.add_argument('--idp-group', help='IdP group to link; removes direct team members')

    for name, handler, verb in (('grant-migrator-role', run_grant_migrator_role, 'Grant'),
                                ('revoke-migrator-role', run_revoke_migrator_role, 'Revoke')):
        role_parser = _add_command(subparsers, name, f'{verb} the migrator role for an organization', handler)
        role_parser.add_argument('--github-org', required=True)
        role_parser.add_argument('--actor', required=True, help='User login or team slug')
        role_parser.add_argument('--actor-type', required=True, choices=['USER', 'TEAM', 'user', 'team'])


def _add_ado2gh_commands(subparsers):
    migrate_parser = _add_command(subparsers, 'migrate-repo', 'Migrate an Azure Repos repository to GitHub',
                                  run_ado_migrate_repo, ado=True)
    migrate_parser.add_argument('--ado-org', required=True)
    migrate_parser.add_argument('--ado-team-project', required=True)
    migrate_parser.add_argument('--ado-repo', required=True)
    migrate_parser.add_argument('--github-org', required=True)
    migrate_parser.add_argument('--github-repo', required=True)
    migrate_parser.add_argument('--target-repo-visibility', choices=VISIBILITY_CHOICES)
    migrate_parser.add_argument('--queue-only', action='store_true', help='Queue the migration without waiting for it')

    for name, handler, help_text in (
        ('rewire-pipeline', run_rewire_pipeline, 'Point an Azure Pipeline at a GitHub repository'),
        ('test-pipeline', run_test_pipeline, 'Dry-run an Azure Pipeline against a GitHub repository and restore it'),
    ):
        pipeline_parser = _add_command(subparsers, name, help_text, handler, ado=True)
        pipeline_parser.add_argument('--ado-org', required=True)
        pipeline_parser.add_argument('--ado-team-project', required=True)
        pipeline_parser.add_argument('--ado-pipeline', help='Pipeline name, optionally prefixed with its \\folder\\ path')
        pipeline_parser.add_argument('--ado-pipeline-id', type=int, help='Pipeline definition id')
        pipeline_parser.add_argument('--github-org', required=True)
        pipeline_parser.add_argument('--github-repo', required=True)
        pipeline_parser.add_argument('--service-connection-id', required=True)
        pipeline_parser.add_argument('--monitor-timeout-minutes', type=int, default=30,
                                     help='How long to watch the dry-run build (default: 30)')
        if name == 'rewire-pipeline':
            pipeline_parser.add_argument('--dry-run', action='store_true',
                                         help='Rewire, queue one build, restore, then monitor the build')

    team_repo_parser = _add_command(subparsers, 'add-team-to-repo', 'Grant a team a role on a repository',
                                    run_add_team_to_repo)
    team_repo_parser.add_argument('--github-org', required=True)
    team_repo_parser.add_argument('--github-repo', required=True)
    team_repo_parser.add_argument('--team', required=True)
    team_repo_parser.add_argument('--role', required=True, choices=['pull', 'push', 'admin', 'maintain', 'triage'])

    for name, handler, help_text in (
        ('lock-ado-repo', run_lock_ado_repo, 'Make an Azure Repos repository read-only'),
        ('disable-ado-repo', run_disable_ado_repo, 'Disable an Azure Repos repository'),
    ):
        repo_parser = _add_command(subparsers, name, help_text, handler, github=False, ado=True)
        repo_parser.add_argument('--ado-org', required=True)
        repo_parser.add_argument('--ado-team-project', required=True)
        repo_parser.add_argument('--ado-repo', required=True)

    autolink_parser = _add_command(subparsers, 'configure-autolink',
                                   'Link AB#<id> references to Azure Boards work items',
                                   run_configure_autolink, ado=True)
    autolink_parser.add_argument('--github-org', required=True)
    autolink_parser.add_argument('--github-repo', required=True)
    autolink_parser.add_argument('--ado-org', required=True)
    autolink_parser.add_argument('--ado-team-project', required=True)

    share_parser = _add_command(subparsers, 'share-service-connection',
                                'Share a service connection with a team project',
                                run_share_service_connection, github=False, ado=True)
    share_parser.add_argument('--ado-org', required=True)
    share_parser.add_argument('--ado-team-project', required=True)
    share_parser.add_argument('--service-connection-id', required=True)


def _add_bbs2gh_commands(subparsers):
    migrate_parser = _add_command(subparsers, 'migrate-repo',
                                  'Export a Bitbucket Server repository and/or import its archive',
                                  run_bbs_migrate_repo)
    migrate_parser.add_argument('--bbs-server-url', help='Bitbucket Server URL; starts an export')
    migrate_parser.add_argument('--bbs-project', help='Project key')
    migrate_parser.add_argument('--bbs-repo', help='Repository slug')
    migrate_parser.add_argument('--bbs-username', help='Defaults to BBS_USERNAME')
    migrate_parser.add_argument('--bbs-password', help='Defaults to BBS_PASSWORD')
    migrate_parser.add_argument('--no-ssl-verify', action='store_true', help='Skip TLS verification for Bitbucket Server')
    migrate_parser.add_argument('--archive-url', help='URL of an uploaded export archive to import')
    migrate_parser.add_argument('--github-org')
    migrate_parser.add_argument('--github-repo')
    migrate_parser.add_argument('--target-repo-visibility', choices=VISIBILITY_CHOICES)
    migrate_parser.add_argument('--queue-only', action='store_true', help='Queue the migration without waiting for it')
    migrate_parser.add_argument('--export-poll-interval-seconds', type=int, default=10,
                                help='Delay between export status checks (default: 10)')


def _add_gei_commands(subparsers):
    migrate_parser = _add_command(subparsers, 'migrate-repo', 'Migrate a repository between GitHub organizations',
                                  run_gei_migrate_repo)
    migrate_parser.add_argument('--github-source-org', required=True)
    migrate_parser.add_argument('--source-repo', required=True)
    migrate_parser.add_argument('--github-target-org', required=True)
    migrate_parser.add_argument('--target-repo', help='Defaults to --source-repo')
    migrate_parser.add_argument('--github-source-pat', help='Defaults to GH_SOURCE_PAT, then GH_PAT')
    migrate_parser.add_argument('--github-target-pat', help='Defaults to GH_PAT')
    migrate_parser.add_argument('--skip-releases', action='store_true')
    migrate_parser.add_argument('--target-repo-visibility', choices=VISIBILITY_CHOICES)
    migrate_parser.add_argument('--queue-only', action='store_true', help='Queue the migration without waiting for it')

    org_parser = _add_command(subparsers, 'migrate-org', 'Migrate a GitHub organization into an enterprise',
                              run_migrate_org)
    org_parser.add_argument('--github-source-org', required=True)
    org_parser.add_argument('--github-target-org', required=True)
    org_parser.add_argument('--github-target-enterprise', required=True)
    org_parser.add_argument('--github-source-pat', help='Defaults to GH_SOURCE_PAT, then GH_PAT')
    org_parser.add_argument('--github-target-pat', help='Defaults to GH_PAT')
    org_parser.add_argument('--queue-only', action='store_true', help='Queue the migration without waiting for it')

    alerts_parser = _add_command(subparsers, 'migrate-secret-alerts',
                                 'Copy secret scanning alert resolutions to the migrated repository',
                                 run_migrate_secret_alerts)
    alerts_parser.add_argument('--source-org', required=True)
    alerts_parser.add_argument('--source-repo', required=True)
    alerts_parser.add_argument('--target-org', required=True)
    alerts_parser.add_argument('--target-repo', help='Defaults to --source-repo')
    alerts_parser.add_argument('--github-source-pat', help='Defaults to GH_SOURCE_PAT, then GH_PAT')
    alerts_parser.add_argument('--github-target-pat', help='Defaults to GH_PAT')
    alerts_parser.add_argument('--dry-run', action='store_true', help='Log the changes without applying them')


def create_main_parser():
    """Create the argument parser with the ado2gh, bbs2gh and gei command groups.

    Returns
    -------
    argparse.ArgumentParser
        Parser whose leaf subcommands set a ``handler`` default.
    """
    parser = argparse.ArgumentParser(
        prog='gh-migrate',
        description='GitHub Migration Tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
GROUPS:
   ado2gh    Azure DevOps to GitHub
   bbs2gh    Bitbucket Server to GitHub
   gei       GitHub to GitHub

EXAMPLES:
  # Migrate an Azure Repos repository and wait for it
  gh-migrate ado2gh migrate-repo --ado-org contoso --ado-team-project app --ado-repo api \\
      --github-org contoso-gh --github-repo api

  # Queue a migration and wait for it separately
  gh-migrate gei migrate-repo --github-source-org src --source-repo api --github-target-org dst --queue-only
  gh-migrate gei wait-for-migration --migration-id RM_kgDaACQzNWUwMWIxMS0xOWRmLTRhNmYtYmE3Ni1hYTM5ZTg4MmZmZmE

  # Try a pipeline against GitHub without leaving it rewired
  gh-migrate ado2gh rewire-pipeline --ado-org contoso --ado-team-project app --ado-pipeline "\\ci\\api" \\
      --github-org contoso-gh --github-repo api --service-connection-id 1234 --dry-run

SECURITY: Tokens are read from GH_PAT, GH_SOURCE_PAT, ADO_PAT, BBS_USERNAME and BBS_PASSWORD
(or a .env file) when not passed on the command line, and are masked in all log output.
        """
    )

    groups = parser.add_subparsers(dest='group', required=True, help='Migration source')

    for group, help_text, add_commands in (
        ('ado2gh', 'Azure DevOps to GitHub', _add_ado2gh_commands),
        ('bbs2gh', 'Bitbucket Server to GitHub', _add_bbs2gh_commands),
        ('gei', 'GitHub to GitHub', _add_gei_commands),
    ):
        group_parser = groups.add_parser(group, help=help_text, description=help_text)
        subparsers = group_parser.add_subparsers(dest='command', required=True, help='Available commands')
        add_commands(subparsers)
        _add_shared_commands(subparsers, group)

    return parser


def main(argv=None):
    """Entry point of the gh-migrate command.

    Side Effects
    ------------
    - Runs the selected command
    - Exits with status 1 on any failure or interrupt

    Raises
    ------
    SystemExit
        With code 1 when the command fails.
    """
    parser = create_main_parser()
    args = parser.parse_args(argv)

    try:
        args.handler(args, parser)
    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user")
        sys.exit(1)
    except MigrationError as e:
        logging.getLogger(LOGGER_NAME).debug("Command failed", exc_info=True)
        print(f"❌ {redact_message(str(e))}")
        sys.exit(1)
    except Exception:
        logging.getLogger(LOGGER_NAME).debug("Unexpected error", exc_info=True)
        print(f"❌ {GENERIC_ERROR_MESSAGE}")
        sys.exit(1)


if __name__ == '__main__':
    main()
