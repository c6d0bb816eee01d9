"""
Bitbucket Server API client.

Only the migration export endpoints are needed: starting an export of a
single repository and polling it until the archive is ready.
"""

from typing import Optional, Tuple
from urllib.parse import quote

from .http_client import RestClient
from ..exceptions import APIError, ValidationError
from ..utils.logging_config import MigrationLogger


class BbsClient(RestClient):
    """
    Client for the Bitbucket Server REST API, authenticated with basic auth.

    Attributes:
        server_url (str): Bitbucket Server root URL, without trailing slash
    """

    platform = 'Bitbucket Server'

    def __init__(self, server_url: str, username: str, password: str,
                 logger: Optional[MigrationLogger] = None, verify_ssl: bool = True, **kwargs) -> None:
        if not username or not password:
            raise ValidationError("Bitbucket Server username and password are required")

        super().__init__(server_url, logger=logger, **kwargs)
        self.server_url = self.base_url
        self.session.auth = (username, password)
        self.session.verify = verify_ssl

    def start_export(self, project_key: str, slug: str) -> int:
        """
        Start a migration export of one repository.

        Returns:
            The export id
        """
        payload = {
            'repositoriesRequest': {
                'includes': [{'projectKey': project_key, 'slug': slug}]
            }
        }
        data = self.post('rest/api/1.0/migration/exports', payload)
        try:
            return int(data['id'])
        except (KeyError, TypeError, ValueError):
            raise APIError(f"Bitbucket Server did not return an export id for {project_key}/{slug}")

    def get_export(self, export_id: int) -> Tuple[str, Optional[str], int]:
        """
        Fetch the state of an export job.

        Returns:
            (state, progress message, percentage complete)
        """
        data = self.get(f'rest/api/1.0/migration/exports/{export_id}')
        progress = data.get('progress') or {}
        return data['state'], progress.get('message'), int(progress.get('percentage') or 0)


def repo_url(server_url: str, project_key: str, slug: str) -> str:
    """Browse URL of a repository, recorded as the migration source URL."""
    return f"{server_url.rstrip('/')}/projects/{quote(project_key, safe='')}/repos/{quote(slug, safe='')}/browse"
