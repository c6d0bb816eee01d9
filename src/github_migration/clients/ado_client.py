"""
Azure DevOps API client for the migration tool.

Covers the repository, security, service connection and build pipeline
endpoints used when moving Azure Repos to GitHub, including the payloads that
point a build definition at a GitHub repository and back again.
"""

import base64
import copy
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote, urlparse

from .http_client import RestClient
from ..exceptions import APIError, ValidationError
from ..utils.logging_config import MigrationLogger

DEFAULT_ADO_SERVER_URL = 'https://dev.azure.com'
GIT_REPOS_SECURITY_NAMESPACE = '2e9eb7ed-3c0a-47d4-87c1-0ffdd275fd87'
LOCK_REPO_DENY_BITS = 56828

# settingsSourceType values on a build definition
SETTINGS_SOURCE_UI = 1
SETTINGS_SOURCE_YAML = 2


def _q(value: Any) -> str:
    return quote(str(value), safe='')


def _strip_refs_heads(branch: Optional[str]) -> Optional[str]:
    if branch and branch.lower().startswith('refs/heads/'):
        return branch[len('refs/heads/'):]
    return branch


def _flag(value: Any) -> str:
    """Render a clean/checkoutSubmodules value the way the definition API stores it."""
    if value is None:
        return 'null'
    return str(value).lower()


def normalize_pipeline_path(pipeline: str, name: Optional[str] = None) -> str:
    r"""
    Normalise a pipeline folder path to \folder\sub\name form.

    With name given, pipeline is the folder path of a definition; otherwise it
    is a user-supplied path that already ends with the pipeline name.
    """
    parts = [part for part in pipeline.split('\\') if part]
    joined = '\\'.join(parts)
    if name is None:
        return f"\\{joined}"
    return f"\\{joined}\\{name}" if joined else f"\\{name}"


class AdoClient(RestClient):
    """
    Client for the Azure DevOps REST API.

    Attributes:
        token (str): Azure DevOps personal access token
        ado_base_url (str): Server root, https://dev.azure.com unless overridden
    """

    platform = 'Azure DevOps'

    def __init__(self, token: str, base_url: Optional[str] = None, logger: Optional[MigrationLogger] = None,
                 **kwargs) -> None:
        if not token or not token.strip():
            raise ValidationError("Azure DevOps token cannot be empty")

        super().__init__(base_url or DEFAULT_ADO_SERVER_URL, logger=logger, **kwargs)
        self.token = token
        self.ado_base_url = self.base_url

        auth = base64.b64encode(f":{token}".encode('utf-8')).decode('ascii')
        self.session.headers.update({'Authorization': f'Basic {auth}'})

        self._pipeline_ids: Dict[tuple, int] = {}
        self._repo_ids: Dict[tuple, Dict[str, str]] = {}

    def get_with_paging(self, path: str) -> Iterator[Dict[str, Any]]:
        """Iterate over a "value" collection, following x-ms-continuationtoken."""
        url = self.url(path)
        continuation_token = None
        while True:
            page_url = url
            if continuation_token:
                separator = '&' if '?' in url else '?'
                page_url = f"{url}{separator}continuationToken={_q(continuation_token)}"

            response = self.request('GET', page_url)
            data = self._json(response) or {}
            for item in data.get('value', []):
                yield item

            continuation_token = response.headers.get('x-ms-continuationtoken')
            if not continuation_token:
                return

    def _definition_url(self, org: str, team_project: str, pipeline_id: int) -> str:
        return f"{_q(org)}/{_q(team_project)}/_apis/build/definitions/{pipeline_id}?api-version=6.0"

    def pipeline_url(self, org: str, team_project: str, pipeline_id: Optional[int]) -> str:
        return f"{self.ado_base_url}/{_q(org)}/{_q(team_project)}/_build/definition?definitionId={pipeline_id}"

    def repo_url(self, org: str, team_project: str, repo: str) -> str:
        return f"{self.ado_base_url}/{_q(org)}/{_q(team_project)}/_git/{_q(repo)}"

    # Projects and repositories

    def get_team_project_id(self, org: str, team_project: str) -> str:
        return self.get(f"{_q(org)}/_apis/projects/{_q(team_project)}?api-version=5.0-preview.1")['id']

    def get_repos(self, org: str, team_project: str) -> List[Dict[str, Any]]:
        return [
            {
                'id': repo['id'],
                'name': repo['name'],
                'size': repo.get('size'),
                'is_disabled': str(repo.get('isDisabled', False)).lower() == 'true',
            }
            for repo in self.get_with_paging(
                f"{_q(org)}/{_q(team_project)}/_apis/git/repositories?api-version=6.1-preview.1"
            )
        ]

    def get_repo_id(self, org: str, team_project: str, repo: str) -> str:
        """
        Look up a repository id by name.

        Disabled repositories return 404 from the single-repo endpoint, so the
        lookup falls back to listing every repository in the project.
        """
        key = (org.upper(), team_project.upper())
        if key not in self._repo_ids:
            try:
                return self.get(f"{_q(org)}/{_q(team_project)}/_apis/git/repositories/{_q(repo)}?api-version=4.1")['id']
            except APIError as e:
                if e.status_code != 404:
                    raise
                self._populate_repo_id_cache(org, team_project)

        try:
            return self._repo_ids[key][repo.upper()]
        except KeyError:
            raise APIError(f"Repository '{repo}' was not found in {org}/{team_project}", status_code=404)

    def _populate_repo_id_cache(self, org: str, team_project: str) -> None:
        ids: Dict[str, str] = {}
        for item in self.get_with_paging(f"{_q(org)}/{_q(team_project)}/_apis/git/repositories?api-version=4.1"):
            name = item['name'].upper()
            if name in ids:
                self._log_warning(
                    f"Multiple repos with the same name were found [org: {org} project: {team_project} "
                    f"repo: {item['name']}]. Ignoring repo ID {item['id']}"
                )
                continue
            ids[name] = item['id']
        self._repo_ids[(org.upper(), team_project.upper())] = ids

    def disable_repo(self, org: str, team_project: str, repo_id: str) -> None:
        self.patch(f"{_q(org)}/{_q(team_project)}/_apis/git/repositories/{_q(repo_id)}?api-version=6.1-preview.1",
                   {'isDisabled': True})

    def get_identity_descriptor(self, org: str, team_project_id: str, group_name: str) -> str:
        url = (f"https://vssps.dev.azure.com/{_q(org)}/_apis/identities?searchFilter=General"
               f"&filterValue={_q(group_name)}&queryMembership=None&api-version=6.1-preview.1")
        matches = [
            identity for identity in self.get_with_paging(url)
            if identity.get('properties', {}).get('LocalScopeId', {}).get('$value') == team_project_id
        ]
        if len(matches) != 1:
            raise APIError(f"Expected exactly one '{group_name}' identity in team project {team_project_id}, found {len(matches)}")
        return matches[0]['descriptor']

    def lock_repo(self, org: str, team_project_id: str, repo_id: str, identity_descriptor: str) -> None:
        payload = {
            'token': f"repoV2/{team_project_id}/{repo_id}",
            'merge': True,
            'accessControlEntries': [
                {
                    'descriptor': identity_descriptor,
                    'allow': 0,
                    'deny': LOCK_REPO_DENY_BITS,
                    'extendedInfo': {
                        'effectiveAllow': 0,
                        'effectiveDeny': LOCK_REPO_DENY_BITS,
                        'inheritedAllow': 0,
                        'inheritedDeny': LOCK_REPO_DENY_BITS
                    }
                }
            ]
        }
        self.post(f"{_q(org)}/_apis/accesscontrolentries/{GIT_REPOS_SECURITY_NAMESPACE}?api-version=6.1-preview.1", payload)

    # Service connections

    def contains_service_connection(self, org: str, team_project: str, service_connection_id: str) -> bool:
        response = self.request(
            'GET',
            f"{_q(org)}/{_q(team_project)}/_apis/serviceendpoint/endpoints/{_q(service_connection_id)}?api-version=6.0-preview.4"
        )
        # An unshared connection comes back as a literal null body
        body = (response.text or '').strip()
        return bool(body) and body.lower() != 'null'

    def share_service_connection(self, org: str, team_project: str, team_project_id: str,
                                 service_connection_id: str) -> None:
        payload = [
            {
                'name': f"{org}-{team_project}",
                'projectReference': {'id': team_project_id, 'name': team_project}
            }
        ]
        self.patch(f"{_q(org)}/_apis/serviceendpoint/endpoints/{_q(service_connection_id)}?api-version=6.0-preview.4", payload)

    # Pipelines

    def get_pipeline_id(self, org: str, team_project: str, pipeline: str) -> int:
        r"""
        Resolve a pipeline name or \folder\name path to its definition id.

        Raises:
            APIError: If no single pipeline matches
        """
        pipeline_path = normalize_pipeline_path(pipeline).upper()
        key = (org.upper(), team_project.upper(), pipeline_path)
        if key in self._pipeline_ids:
            return self._pipeline_ids[key]

        definitions = list(self.get_with_paging(
            f"{_q(org)}/{_q(team_project)}/_apis/build/definitions?queryOrder=definitionNameAscending"
        ))
        for item in definitions:
            path = normalize_pipeline_path(item.get('path') or '', item['name']).upper()
            item_key = (org.upper(), team_project.upper(), path)
            if item_key in self._pipeline_ids:
                self._log_warning(
                    f"Multiple pipelines with the same path/name were found [org: {org} project: {team_project} "
                    f"pipeline: {path}]. Ignoring pipeline ID {item['id']}"
                )
                continue
            self._pipeline_ids[item_key] = int(item['id'])

        if key in self._pipeline_ids:
            return self._pipeline_ids[key]

        by_name = [item for item in definitions if item['name'].upper() == pipeline.upper()]
        if len(by_name) == 1:
            return int(by_name[0]['id'])
        raise APIError(f"Unable to find the specified pipeline: {pipeline}", status_code=404)

    def get_pipeline_definition(self, org: str, team_project: str, pipeline_id: int) -> Dict[str, Any]:
        return self.get(self._definition_url(org, team_project, pipeline_id),
                        not_found_message=f"Pipeline {pipeline_id} could not be found in {org}/{team_project}")

    def get_pipeline(self, org: str, team_project: str, pipeline_id: int) -> Dict[str, Any]:
        """
        Read the settings of a pipeline that survive a rewire.

        Returns:
            Dict with default_branch (without refs/heads/), clean,
            checkout_submodules and the original triggers
        """
        data = self.get_pipeline_definition(org, team_project, pipeline_id)
        repository = data.get('repository') or {}
        return {
            'default_branch': _strip_refs_heads(repository.get('defaultBranch')),
            'clean': _flag(repository.get('clean')),
            'checkout_submodules': _flag(repository.get('checkoutSubmodules')),
            'triggers': data.get('triggers'),
        }

    def get_pipeline_repository(self, org: str, team_project: str, pipeline_id: int) -> Dict[str, Any]:
        data = self.get_pipeline_definition(org, team_project, pipeline_id)
        repository = data.get('repository') or {}
        return {
            'repo_name': repository.get('name'),
            'repo_id': repository.get('id'),
            'default_branch': repository.get('defaultBranch'),
            'clean': _flag(repository.get('clean')),
            'checkout_submodules': _flag(repository.get('checkoutSubmodules')),
        }

    def is_pipeline_enabled(self, org: str, team_project: str, pipeline_id: int) -> bool:
        data = self.get_pipeline_definition(org, team_project, pipeline_id)
        status = (data.get('queueStatus') or 'enabled').lower()
        return status not in ('disabled', 'paused')

    def rewire_pipeline_to_github(self, org: str, team_project: str, pipeline_id: int, default_branch: str,
                                  clean: str, checkout_submodules: str, github_org: str, github_repo: str,
                                  service_connection_id: str, original_triggers: Any = None,
                                  target_api_url: Optional[str] = None) -> None:
        """Point a build definition at a GitHub repository through a service connection."""
        url = self._definition_url(org, team_project, pipeline_id)
        data = self.get(url, not_found_message="Pipeline could not be found. Please verify the pipeline name or ID and try again.")

        new_repo = build_github_repository(github_org, github_repo, default_branch, clean, checkout_submodules,
                                           service_connection_id, target_api_url)
        payload = copy.deepcopy(data)
        payload['repository'] = new_repo
        payload['triggers'] = build_yaml_triggers(original_triggers)
        payload['settingsSourceType'] = SETTINGS_SOURCE_YAML

        self.put(url, payload)

    def restore_pipeline_to_ado_repo(self, org: str, team_project: str, pipeline_id: int, ado_repo_name: str,
                                     default_branch: str, clean: str, checkout_submodules: str,
                                     original_triggers: Any) -> None:
        """Point a build definition back at its Azure Repos repository."""
        url = self._definition_url(org, team_project, pipeline_id)
        data = self.get(url)
        repo_id = self.get_repo_id(org, team_project, ado_repo_name)

        payload = copy.deepcopy(data)
        payload['repository'] = {
            'id': repo_id,
            'type': 'TfsGit',
            'name': ado_repo_name,
            'url': self.repo_url(org, team_project, ado_repo_name),
            'defaultBranch': default_branch,
            'clean': clean,
            'checkoutSubmodules': checkout_submodules,
            'properties': {
                'cleanOptions': '0',
                'labelSources': '0',
                'labelSourcesFormat': '$(build.buildNumber)',
                'reportBuildStatus': 'true',
                'gitLfsSupport': 'false',
                'skipSyncSource': 'false',
                'checkoutNestedSubmodules': 'false',
                'fetchDepth': '0'
            }
        }
        payload['triggers'] = original_triggers
        payload['settingsSourceType'] = SETTINGS_SOURCE_UI

        self.put(url, payload)

    # Builds

    def queue_build(self, org: str, team_project: str, pipeline_id: int, source_branch: str = 'refs/heads/main') -> int:
        payload = {'definition': {'id': pipeline_id}, 'sourceBranch': source_branch, 'reason': 'manual'}
        data = self.post(f"{_q(org)}/{_q(team_project)}/_apis/build/builds?api-version=6.0", payload)
        return int(data['id'])

    def get_build(self, org: str, team_project: str, build_id: int) -> Dict[str, Any]:
        """
        Fetch a build.

        Returns:
            Dict with status, result, url, start_time and finish_time
        """
        data = self.get(f"{_q(org)}/{_q(team_project)}/_apis/build/builds/{build_id}?api-version=6.0")
        return {
            'status': data.get('status'),
            'result': data.get('result'),
            'url': data.get('_links', {}).get('web', {}).get('href'),
            'start_time': data.get('startTime'),
            'finish_time': data.get('finishTime'),
        }


def build_github_urls(github_org: str, github_repo: str, target_api_url: Optional[str] = None) -> Dict[str, str]:
    """
    Build the URLs a GitHub repository link in a build definition refers to.

    A custom API URL (GHE.com data residency) maps to its web host by
    dropping a leading "api." from the host name.
    """
    org = _q(github_org)
    repo = _q(github_repo)

    if target_api_url:
        api_root = target_api_url.rstrip('/')
        parsed = urlparse(api_root)
        host = parsed.netloc[4:] if parsed.netloc.startswith('api.') else parsed.netloc
        web_base = f"{parsed.scheme}://{host}"
    else:
        api_root = 'https://api.github.com'
        web_base = 'https://github.com'

    web_url = f"{web_base}/{org}/{repo}"
    return {
        'api_url': f"{api_root}/repos/{org}/{repo}",
        'web_url': web_url,
        'clone_url': f"{web_url}.git",
        'branches_url': f"{api_root}/repos/{org}/{repo}/branches",
        'refs_url': f"{api_root}/repos/{org}/{repo}/git/refs",
        'manage_url': web_url,
    }


def build_github_repository(github_org: str, github_repo: str, default_branch: str, clean: str,
                            checkout_submodules: str, service_connection_id: str,
                            target_api_url: Optional[str] = None) -> Dict[str, Any]:
    urls = build_github_urls(github_org, github_repo, target_api_url)
    full_name = f"{github_org}/{github_repo}"
    return {
        'properties': {
            'apiUrl': urls['api_url'],
            'branchesUrl': urls['branches_url'],
            'cloneUrl': urls['clone_url'],
            'connectedServiceId': service_connection_id,
            'defaultBranch': default_branch,
            'fullName': full_name,
            'manageUrl': urls['manage_url'],
            'orgName': github_org,
            'refsUrl': urls['refs_url'],
            'safeRepository': f"{_q(github_org)}/{_q(github_repo)}",
            'shortName': github_repo,
            'reportBuildStatus': 'true'
        },
        'id': full_name,
        'type': 'GitHub',
        'name': full_name,
        'url': urls['clone_url'],
        'defaultBranch': default_branch,
        'clean': clean,
        'checkoutSubmodules': checkout_submodules
    }


def _find_trigger(original_triggers: Any, trigger_type: str) -> Optional[Dict[str, Any]]:
    if not isinstance(original_triggers, list):
        return None
    for trigger in original_triggers:
        if isinstance(trigger, dict) and trigger.get('triggerType') == trigger_type:
            return trigger
    return None


def _original_report_build_status(original_triggers: Any, trigger_type: str) -> bool:
    trigger = _find_trigger(original_triggers, trigger_type)
    if trigger is None or 'reportBuildStatus' not in trigger:
        return True
    value = trigger['reportBuildStatus']
    if isinstance(value, bool):
        return value
    return str(value).lower() == 'true'


def build_yaml_triggers(original_triggers: Any = None) -> List[Dict[str, Any]]:
    """
    Build YAML-controlled CI and PR triggers for a rewired pipeline.

    The PR trigger is kept only if the pipeline had one (or had no triggers
    at all), and build status reporting follows the original settings.
    """
    if original_triggers is not None:
        enable_pr = _find_trigger(original_triggers, 'pullRequest') is not None
        ci_report = _original_report_build_status(original_triggers, 'continuousIntegration')
        pr_report = _original_report_build_status(original_triggers, 'pullRequest')
    else:
        enable_pr = ci_report = pr_report = True

    ci_trigger: Dict[str, Any] = {
        'triggerType': 'continuousIntegration',
        'settingsSourceType': SETTINGS_SOURCE_YAML,
        'branchFilters': [],
        'pathFilters': [],
        'batchChanges': False
    }
    if ci_report:
        ci_trigger['reportBuildStatus'] = 'true'

    triggers = [ci_trigger]

    if enable_pr:
        pr_trigger: Dict[str, Any] = {
            'triggerType': 'pullRequest',
            'settingsSourceType': SETTINGS_SOURCE_YAML,
            'isCommentRequiredForPullRequest': False,
            'requireCommentsForNonTeamMembersOnly': False,
            'forks': {'enabled': False, 'allowSecrets': False},
            'branchFilters': [],
            'pathFilters': []
        }
        if pr_report:
            pr_trigger['reportBuildStatus'] = 'true'
        triggers.append(pr_trigger)

    return triggers
