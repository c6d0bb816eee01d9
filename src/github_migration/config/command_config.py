"""
Typed per-command options.

Each command turns its argparse namespace into one of these dataclasses with
from_args. Input problems are reported as ValidationError from __post_init__,
before any client is built or any network call is made. Tokens given on the
command line are carried as-is; resolving them against the environment is the
job of config.credentials.
"""

import argparse
from dataclasses import dataclass, fields
from typing import ClassVar, Dict, Optional

from ..core.migration_status import is_organization_migration_id, is_repository_migration_id
from ..exceptions import ValidationError

REPO_VISIBILITIES = ('public', 'private', 'internal')
TEAM_ROLES = ('pull', 'push', 'admin', 'maintain', 'triage')
ACTOR_TYPES = ('USER', 'TEAM')


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class CommandConfig:
    """
    Options shared by every command.

    Attributes:
        verbose: Show debug output on the console
        log_file: Optional path of a log file that receives debug output
    """
    verbose: bool = False
    log_file: Optional[str] = None

    # option name -> flag shown in error messages
    REQUIRED: ClassVar[Dict[str, str]] = {}

    @classmethod
    def from_args(cls, args: argparse.Namespace):
        values = {f.name: getattr(args, f.name) for f in fields(cls) if hasattr(args, f.name)}
        return cls(**values)

    def __post_init__(self):
        for name, flag in self.REQUIRED.items():
            if _is_blank(getattr(self, name)):
                raise ValidationError(f"{flag} must be specified")


@dataclass
class GitHubTargetOptions(CommandConfig):
    github_pat: Optional[str] = None
    target_api_url: Optional[str] = None


@dataclass
class AdoOptions(CommandConfig):
    ado_pat: Optional[str] = None
    ado_server_url: Optional[str] = None


def _check_visibility(visibility: Optional[str]) -> None:
    if visibility is not None and visibility not in REPO_VISIBILITIES:
        raise ValidationError(
            f"Invalid --target-repo-visibility '{visibility}'. Must be one of: {', '.join(REPO_VISIBILITIES)}"
        )


# Shared commands

@dataclass
class WaitForMigrationConfig(GitHubTargetOptions):
    migration_id: Optional[str] = None

    REQUIRED = {'migration_id': '--migration-id'}

    def __post_init__(self):
        super().__post_init__()
        if not (is_repository_migration_id(self.migration_id) or is_organization_migration_id(self.migration_id)):
            raise ValidationError(f"Invalid migration id: {self.migration_id}")


@dataclass
class AbortMigrationConfig(GitHubTargetOptions):
    migration_id: Optional[str] = None

    REQUIRED = {'migration_id': '--migration-id'}


@dataclass
class DownloadLogsConfig(GitHubTargetOptions):
    """
    Attributes:
        migration_id: Repository migration to fetch the log of
        github_org / github_repo: Alternative lookup by target repository
        migration_log_file: Output path, derived from the ids when omitted
        overwrite: Replace an existing file
        max_attempts / retry_delay_seconds: Bounds for waiting on the log URL
    """
    migration_id: Optional[str] = None
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    migration_log_file: Optional[str] = None
    overwrite: bool = False
    max_attempts: int = 6
    retry_delay_seconds: int = 10

    def __post_init__(self):
        super().__post_init__()
        if self.migration_id:
            if not is_repository_migration_id(self.migration_id):
                raise ValidationError(f"Invalid migration id: {self.migration_id}")
        elif _is_blank(self.github_org) or _is_blank(self.github_repo):
            raise ValidationError("Either --migration-id or both --github-org and --github-repo must be specified")
        if self.max_attempts < 1:
            raise ValidationError("--max-attempts must be at least 1")


@dataclass
class CreateTeamConfig(GitHubTargetOptions):
    github_org: Optional[str] = None
    team_name: Optional[str] = None
    idp_group: Optional[str] = None

    REQUIRED = {'github_org': '--github-org', 'team_name': '--team-name'}


@dataclass
class MigratorRoleConfig(GitHubTargetOptions):
    github_org: Optional[str] = None
    actor: Optional[str] = None
    actor_type: Optional[str] = None

    REQUIRED = {'github_org': '--github-org', 'actor': '--actor', 'actor_type': '--actor-type'}

    def __post_init__(self):
        super().__post_init__()
        self.actor_type = self.actor_type.upper()
        if self.actor_type not in ACTOR_TYPES:
            raise ValidationError("Actor type must be either TEAM or USER.")


# ado2gh

@dataclass
class AdoMigrateRepoConfig(GitHubTargetOptions, AdoOptions):
    ado_org: Optional[str] = None
    ado_team_project: Optional[str] = None
    ado_repo: Optional[str] = None
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    target_repo_visibility: Optional[str] = None
    queue_only: bool = False

    REQUIRED = {
        'ado_org': '--ado-org',
        'ado_team_project': '--ado-team-project',
        'ado_repo': '--ado-repo',
        'github_org': '--github-org',
        'github_repo': '--github-repo',
    }

    def __post_init__(self):
        super().__post_init__()
        _check_visibility(self.target_repo_visibility)


@dataclass
class RewirePipelineConfig(GitHubTargetOptions, AdoOptions):
    """
    Options of rewire-pipeline and test-pipeline.

    With dry_run set the pipeline is only rewired long enough to queue one
    build, then restored and the build is monitored for up to
    monitor_timeout_minutes.
    """
    ado_org: Optional[str] = None
    ado_team_project: Optional[str] = None
    ado_pipeline: Optional[str] = None
    ado_pipeline_id: Optional[int] = None
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    service_connection_id: Optional[str] = None
    dry_run: bool = False
    monitor_timeout_minutes: int = 30

    REQUIRED = {
        'ado_org': '--ado-org',
        'ado_team_project': '--ado-team-project',
        'github_org': '--github-org',
        'github_repo': '--github-repo',
        'service_connection_id': '--service-connection-id',
    }

    def __post_init__(self):
        super().__post_init__()
        if _is_blank(self.ado_pipeline) and self.ado_pipeline_id is None:
            raise ValidationError("Either --ado-pipeline or --ado-pipeline-id must be specified")
        if not _is_blank(self.ado_pipeline) and self.ado_pipeline_id is not None:
            raise ValidationError("Only one of --ado-pipeline or --ado-pipeline-id can be specified")
        if self.monitor_timeout_minutes is None or self.monitor_timeout_minutes <= 0:
            raise ValidationError("--monitor-timeout-minutes must be a positive number")


@dataclass
class AddTeamToRepoConfig(GitHubTargetOptions):
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    team: Optional[str] = None
    role: Optional[str] = None

    REQUIRED = {'github_org': '--github-org', 'github_repo': '--github-repo', 'team': '--team', 'role': '--role'}

    def __post_init__(self):
        super().__post_init__()
        if self.role not in TEAM_ROLES:
            raise ValidationError(f"Invalid --role '{self.role}'. Must be one of: {', '.join(TEAM_ROLES)}")


@dataclass
class AdoRepoConfig(AdoOptions):
    """Options of lock-ado-repo and disable-ado-repo."""
    ado_org: Optional[str] = None
    ado_team_project: Optional[str] = None
    ado_repo: Optional[str] = None

    REQUIRED = {'ado_org': '--ado-org', 'ado_team_project': '--ado-team-project', 'ado_repo': '--ado-repo'}


@dataclass
class ConfigureAutolinkConfig(GitHubTargetOptions, AdoOptions):
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    ado_org: Optional[str] = None
    ado_team_project: Optional[str] = None

    REQUIRED = {
        'github_org': '--github-org',
        'github_repo': '--github-repo',
        'ado_org': '--ado-org',
        'ado_team_project': '--ado-team-project',
    }


@dataclass
class ShareServiceConnectionConfig(AdoOptions):
    ado_org: Optional[str] = None
    ado_team_project: Optional[str] = None
    service_connection_id: Optional[str] = None

    REQUIRED = {
        'ado_org': '--ado-org',
        'ado_team_project': '--ado-team-project',
        'service_connection_id': '--service-connection-id',
    }


# bbs2gh

@dataclass
class BbsMigrateRepoConfig(GitHubTargetOptions):
    """
    Options of bbs2gh migrate-repo.

    --bbs-server-url starts an export of the repository; --archive-url with
    --github-org imports an already uploaded archive. Both can be given in one
    run only when the archive URL points at the export being generated.
    """
    bbs_server_url: Optional[str] = None
    bbs_project: Optional[str] = None
    bbs_repo: Optional[str] = None
    bbs_username: Optional[str] = None
    bbs_password: Optional[str] = None
    no_ssl_verify: bool = False
    archive_url: Optional[str] = None
    github_org: Optional[str] = None
    github_repo: Optional[str] = None
    target_repo_visibility: Optional[str] = None
    queue_only: bool = False
    export_poll_interval_seconds: int = 10

    def __post_init__(self):
        super().__post_init__()

        if _is_blank(self.bbs_server_url) and _is_blank(self.archive_url):
            raise ValidationError("Either --bbs-server-url or --archive-url must be specified.")

        if self.should_generate_archive():
            if _is_blank(self.bbs_project):
                raise ValidationError("--bbs-project must be provided when --bbs-server-url is provided.")
            if _is_blank(self.bbs_repo):
                raise ValidationError("--bbs-repo must be provided when --bbs-server-url is provided.")

        if not _is_blank(self.github_org) and _is_blank(self.archive_url):
            raise ValidationError(
                "--archive-url must be provided together with --github-org. "
                "Uploading the exported archive is not supported; upload it yourself and pass its URL."
            )

        if self.should_import_archive():
            if _is_blank(self.github_org):
                raise ValidationError("--github-org must be provided in order to import the Bitbucket archive.")
            if _is_blank(self.github_repo):
                raise ValidationError("--github-repo must be provided in order to import the Bitbucket archive.")

        _check_visibility(self.target_repo_visibility)

    def should_generate_archive(self) -> bool:
        return not _is_blank(self.bbs_server_url)

    def should_import_archive(self) -> bool:
        return not _is_blank(self.archive_url)


# gei

@dataclass
class GeiMigrateRepoConfig(GitHubTargetOptions):
    github_source_org: Optional[str] = None
    source_repo: Optional[str] = None
    github_target_org: Optional[str] = None
    target_repo: Optional[str] = None
    github_source_pat: Optional[str] = None
    github_target_pat: Optional[str] = None
    skip_releases: bool = False
    target_repo_visibility: Optional[str] = None
    queue_only: bool = False

    REQUIRED = {
        'github_source_org': '--github-source-org',
        'source_repo': '--source-repo',
        'github_target_org': '--github-target-org',
    }

    def __post_init__(self):
        super().__post_init__()
        if _is_blank(self.target_repo):
            self.target_repo = self.source_repo
        _check_visibility(self.target_repo_visibility)


@dataclass
class MigrateOrgConfig(GitHubTargetOptions):
    github_source_org: Optional[str] = None
    github_target_org: Optional[str] = None
    github_target_enterprise: Optional[str] = None
    github_source_pat: Optional[str] = None
    github_target_pat: Optional[str] = None
    queue_only: bool = False

    REQUIRED = {
        'github_source_org': '--github-source-org',
        'github_target_org': '--github-target-org',
        'github_target_enterprise': '--github-target-enterprise',
    }


@dataclass
class MigrateSecretAlertsConfig(GitHubTargetOptions):
    source_org: Optional[str] = None
    source_repo: Optional[str] = None
    target_org: Optional[str] = None
    target_repo: Optional[str] = None
    github_source_pat: Optional[str] = None
    github_target_pat: Optional[str] = None
    dry_run: bool = False

    REQUIRED = {'source_org': '--source-org', 'source_repo': '--source-repo', 'target_org': '--target-org'}

    def __post_init__(self):
        super().__post_init__()
        if _is_blank(self.target_repo):
            self.target_repo = self.source_repo
