"""
Exception hierarchy for the GitHub migration toolkit.

Every error the toolkit raises on purpose derives from MigrationError, so the
command-line entry point can tell expected failures (bad input, failed
migrations, API errors) apart from genuine bugs.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration toolkit errors."""


class ConfigurationError(MigrationError):
    """A required setting, such as an access token, could not be resolved."""


class ValidationError(MigrationError):
    """User input is missing, malformed or contradictory."""


class APIError(MigrationError):
    """
    A platform API call failed.

    Attributes:
        status_code: HTTP status code of the failed response, if there was one
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """The platform rejected the supplied credentials (401/403)."""


class NetworkError(MigrationError):
    """The platform could not be reached."""


class MigrationFailedError(MigrationError):
    """
    The platform reported a terminal failure for a migration or export.

    Attributes:
        failure_reason: Failure reason exactly as reported by the platform
        migration_log_url: Download URL of the migration log, when available
    """

    def __init__(self, message: str, failure_reason: Optional[str] = None,
                 migration_log_url: Optional[str] = None) -> None:
        super().__init__(message)
        self.failure_reason = failure_reason
        self.migration_log_url = migration_log_url


class ManualRestorationRequiredError(MigrationError):
    """
    A pipeline was rewired to GitHub but could not be pointed back at its
    original Azure DevOps repository.

    The pipeline is left in a modified state and an operator has to restore it
    by hand, so this is always fatal.
    """

    def __init__(self, pipeline_id: Optional[int], original_repo: Optional[str],
                 pipeline_url: Optional[str], reason: Optional[str] = None) -> None:
        self.pipeline_id = pipeline_id
        self.original_repo = original_repo
        self.pipeline_url = pipeline_url
        self.reason = reason

        message = (
            f"MANUAL RESTORATION REQUIRED for pipeline {pipeline_id}: it is still pointing at GitHub. "
            f"Open {pipeline_url} and set its repository back to '{original_repo}'."
        )
        if reason:
            message += f" Restore failed with: {reason}"
        super().__init__(message)
