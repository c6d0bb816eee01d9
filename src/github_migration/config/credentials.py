"""
Credential resolution for the migration commands.

Tokens may be passed on the command line, set in the environment, or kept in
a .env file in the working directory. Resolution order is always:

1. the explicit command-line value
2. the primary environment variable
3. the legacy environment variable, where one exists

Every resolved value is registered with the MigrationLogger so it is masked
in all log output.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from ..exceptions import ConfigurationError
from ..utils.logging_config import MigrationLogger

GH_PAT = 'GH_PAT'
GH_PAT_LEGACY = 'GITHUB_TOKEN'
GH_SOURCE_PAT = 'GH_SOURCE_PAT'
ADO_PAT = 'ADO_PAT'
ADO_PAT_LEGACY = 'AZURE_DEVOPS_EXT_PAT'
BBS_USERNAME = 'BBS_USERNAME'
BBS_PASSWORD = 'BBS_PASSWORD'


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def resolve_credential(explicit: Optional[str], primary_env: str, legacy_env: Optional[str] = None,
                       logger: Optional[MigrationLogger] = None, required: bool = True) -> Optional[str]:
    """
    Resolve one credential using the documented precedence order.

    Args:
        explicit: Value passed on the command line, if any
        primary_env: Name of the primary environment variable
        legacy_env: Name of a deprecated environment variable still honoured
        logger: Logger the resolved value is registered with as a secret
        required: Raise when nothing yields a value

    Returns:
        The resolved value, or None when not required and not found

    Raises:
        ConfigurationError: If required and no source yields a value
    """
    value = _clean(explicit)

    if value is None:
        value = _clean(os.getenv(primary_env))

    if value is None and legacy_env:
        value = _clean(os.getenv(legacy_env))
        if value is not None and logger:
            logger.warning(f"{legacy_env} is deprecated, please use {primary_env} instead")

    if value is None:
        if required:
            raise ConfigurationError(f"{primary_env} environment variable is not set.")
        return None

    if logger:
        logger.register_secret(value)
    return value


class CredentialResolver:
    """
    Resolves the tokens used by the migration commands.

    Loads a .env file on construction so values stored there are visible
    through os.environ, without overriding variables already set.
    """

    def __init__(self, logger: Optional[MigrationLogger] = None, load_env_file: bool = True) -> None:
        self.logger = logger
        if load_env_file:
            load_dotenv()

    def target_github_pat(self, explicit: Optional[str] = None, required: bool = True) -> Optional[str]:
        return resolve_credential(explicit, GH_PAT, GH_PAT_LEGACY, self.logger, required)

    def source_github_pat(self, explicit: Optional[str] = None, required: bool = True) -> Optional[str]:
        """Source PAT, falling back to the target PAT chain when GH_SOURCE_PAT is unset."""
        value = resolve_credential(explicit, GH_SOURCE_PAT, None, self.logger, required=False)
        if value is not None:
            return value
        return self.target_github_pat(required=required)

    def ado_pat(self, explicit: Optional[str] = None, required: bool = True) -> Optional[str]:
        return resolve_credential(explicit, ADO_PAT, ADO_PAT_LEGACY, self.logger, required)

    def bbs_username(self, explicit: Optional[str] = None, required: bool = True) -> Optional[str]:
        return resolve_credential(explicit, BBS_USERNAME, None, self.logger, required)

    def bbs_password(self, explicit: Optional[str] = None, required: bool = True) -> Optional[str]:
        return resolve_credential(explicit, BBS_PASSWORD, None, self.logger, required)
