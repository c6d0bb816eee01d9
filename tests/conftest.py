"""
Shared pytest fixtures for unit tests.

Provides mock loggers, real requests.Response objects and migration status
helpers for testing the clients, services and commands.
"""

import json
from contextlib import ExitStack
from typing import Any, Dict, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from github_migration.core.migration_status import MigrationStatusSnapshot


def make_response(status_code: int = 200, json_data: Any = None, text: Optional[str] = None,
                  headers: Optional[Dict[str, str]] = None,
                  url: str = 'https://api.example.com/test') -> requests.Response:
    """Build a real requests.Response so raise_for_status, json() and links behave as in production."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = 'OK' if status_code < 400 else 'Error'
    response.url = url
    response.encoding = 'utf-8'
    if json_data is not None:
        response._content = json.dumps(json_data).encode('utf-8')
    elif text is not None:
        response._content = text.encode('utf-8')
    else:
        response._content = b''
    response._content_consumed = True
    response.headers.update(headers or {})
    return response


def graphql_response(data: Any = None, errors: Any = None) -> requests.Response:
    body: Dict[str, Any] = {'data': data}
    if errors is not None:
        body['errors'] = errors
    return make_response(200, body, url='https://api.github.com/graphql')


@pytest.fixture
def response_factory():
    """Factory for real requests.Response objects."""
    return make_response


@pytest.fixture
def mock_logger():
    """Create a mock MigrationLogger that records every call."""
    logger = MagicMock()
    logger.debug = MagicMock()
    logger.verbose = MagicMock()
    logger.info = MagicMock()
    logger.success = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.register_secret = MagicMock()
    return logger


def repo_status(state: str, repository_name: str = 'repo1', failure_reason: Optional[str] = None,
                warnings_count: int = 0,
                migration_log_url: Optional[str] = 'https://example.com/log') -> MigrationStatusSnapshot:
    return MigrationStatusSnapshot(
        state=state,
        repository_name=repository_name,
        failure_reason=failure_reason,
        warnings_count=warnings_count,
        migration_log_url=migration_log_url,
    )


def org_status(state: str, remaining: Optional[int] = None, total: Optional[int] = None,
               failure_reason: Optional[str] = None) -> MigrationStatusSnapshot:
    return MigrationStatusSnapshot(
        state=state,
        source_org_url='https://github.com/source-org',
        target_org_name='target-org',
        failure_reason=failure_reason,
        remaining_repositories_count=remaining,
        total_repositories_count=total,
    )


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep real tokens from the developer's shell out of the tests."""
    for name in ('GH_PAT', 'GITHUB_TOKEN', 'GH_SOURCE_PAT', 'ADO_PAT', 'AZURE_DEVOPS_EXT_PAT',
                 'BBS_USERNAME', 'BBS_PASSWORD'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def graphql_factory():
    """Factory for GraphQL responses with a data object and optional errors."""
    return graphql_response


@pytest.fixture
def repo_status_factory():
    """Factory for repository migration status snapshots."""
    return repo_status


@pytest.fixture
def org_status_factory():
    """Factory for organization migration status snapshots."""
    return org_status


COMMAND_MODULES = (
    'wait_for_migration',
    'download_logs',
    'migrate_repo',
    'bbs_migrate_repo',
    'rewire_pipeline',
    'github_commands',
    'ado_commands',
)


@pytest.fixture
def command_logger(mock_logger):
    """Patch create_logger in every command module to return mock_logger."""
    with ExitStack() as stack:
        for module in COMMAND_MODULES:
            stack.enter_context(
                patch(f'github_migration.commands.{module}.create_logger', return_value=mock_logger)
            )
        yield mock_logger


@pytest.fixture
def credentials():
    """Patch the resolver used by the shared client factories."""
    with patch('github_migration.commands.common.CredentialResolver') as resolver_class:
        resolver = resolver_class.return_value
        resolver.target_github_pat.return_value = 'gh-pat'
        resolver.ado_pat.return_value = 'ado-pat'
        yield resolver


@pytest.fixture
def github_client(credentials):
    """Mock GitHubClient returned by create_target_github_client."""
    with patch('github_migration.commands.common.GitHubClient') as client_class:
        yield client_class.return_value


@pytest.fixture
def ado_client(credentials):
    """Mock AdoClient returned by create_ado_client."""
    with patch('github_migration.commands.common.AdoClient') as client_class:
        yield client_class.return_value


@pytest.fixture
def parse_args():
    """Parse a gh-migrate command line with the real parser."""
    from github_migration.migrate_to_github import create_main_parser

    parser = create_main_parser()
    return parser.parse_args
