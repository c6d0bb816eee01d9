"""
Tests for credential resolution and its precedence order.
"""

import pytest
from unittest.mock import patch

from github_migration.config.credentials import CredentialResolver, resolve_credential
from github_migration.exceptions import ConfigurationError


class TestResolveCredential:
    """Test explicit value > primary variable > legacy variable."""

    def test_explicit_value_wins(self, monkeypatch, mock_logger):
        """Test that a command-line value overrides the environment."""
        monkeypatch.setenv('GH_PAT', 'env-token')

        assert resolve_credential('cli-token', 'GH_PAT', 'GITHUB_TOKEN', mock_logger) == 'cli-token'
        mock_logger.register_secret.assert_called_once_with('cli-token')

    def test_primary_environment_variable(self, monkeypatch):
        """Test the primary variable when no explicit value is given."""
        monkeypatch.setenv('GH_PAT', 'env-token')
        monkeypatch.setenv('GITHUB_TOKEN', 'legacy-token')

        assert resolve_credential(None, 'GH_PAT', 'GITHUB_TOKEN') == 'env-token'

    def test_legacy_variable_warns(self, monkeypatch, mock_logger):
        """Test that the legacy variable is honoured with a deprecation warning."""
        monkeypatch.setenv('GITHUB_TOKEN', 'legacy-token')

        assert resolve_credential(None, 'GH_PAT', 'GITHUB_TOKEN', mock_logger) == 'legacy-token'
        mock_logger.warning.assert_called_once_with("GITHUB_TOKEN is deprecated, please use GH_PAT instead")

    def test_blank_values_are_ignored(self, monkeypatch):
        """Test that whitespace-only values fall through to the next source."""
        monkeypatch.setenv('GH_PAT', '   ')
        monkeypatch.setenv('GITHUB_TOKEN', 'legacy-token')

        assert resolve_credential('  ', 'GH_PAT', 'GITHUB_TOKEN') == 'legacy-token'

    def test_missing_required_raises(self):
        """Test the error when no source yields a value."""
        with pytest.raises(ConfigurationError, match="GH_PAT environment variable is not set."):
            resolve_credential(None, 'GH_PAT', 'GITHUB_TOKEN')

    def test_missing_optional_returns_none(self):
        assert resolve_credential(None, 'GH_PAT', required=False) is None


class TestCredentialResolver:
    """Test the per-platform resolvers."""

    @pytest.fixture
    def resolver(self, mock_logger):
        with patch('github_migration.config.credentials.load_dotenv'):
            return CredentialResolver(mock_logger)

    def test_loads_env_file(self, mock_logger):
        """Test that the .env file is loaded on construction."""
        with patch('github_migration.config.credentials.load_dotenv') as mock_load:
            CredentialResolver(mock_logger)

        mock_load.assert_called_once_with()

    def test_skip_env_file(self, mock_logger):
        with patch('github_migration.config.credentials.load_dotenv') as mock_load:
            CredentialResolver(mock_logger, load_env_file=False)

        mock_load.assert_not_called()

    def test_source_pat_prefers_source_variable(self, resolver, monkeypatch):
        monkeypatch.setenv('GH_SOURCE_PAT', 'source-token')
        monkeypatch.setenv('GH_PAT', 'target-token')

        assert resolver.source_github_pat() == 'source-token'

    def test_source_pat_falls_back_to_target(self, resolver, monkeypatch):
        """Test that GH_PAT is used for the source when GH_SOURCE_PAT is unset."""
        monkeypatch.setenv('GH_PAT', 'target-token')

        assert resolver.source_github_pat() == 'target-token'

    def test_ado_pat_legacy_variable(self, resolver, monkeypatch, mock_logger):
        monkeypatch.setenv('AZURE_DEVOPS_EXT_PAT', 'ado-token')

        assert resolver.ado_pat() == 'ado-token'
        mock_logger.register_secret.assert_called_with('ado-token')

    def test_bbs_credentials(self, resolver, monkeypatch):
        monkeypatch.setenv('BBS_USERNAME', 'admin')
        monkeypatch.setenv('BBS_PASSWORD', 'hunter2')

        assert resolver.bbs_username() == 'admin'
        assert resolver.bbs_password() == 'hunter2'

    def test_missing_ado_pat(self, resolver):
        with pytest.raises(ConfigurationError, match="ADO_PAT"):
            resolver.ado_pat()
