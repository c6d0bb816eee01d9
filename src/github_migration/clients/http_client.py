"""
Shared HTTP plumbing for the platform API clients.

RestClient owns the authenticated requests.Session, retries individual calls
on rate limiting and transient server errors, and translates failed
responses into the toolkit's exception hierarchy. The GitHub, Azure DevOps
and Bitbucket Server clients build their endpoint methods on top of it.
"""

import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from ..exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    ValidationError
)
from ..utils.logging_config import MigrationLogger

USER_AGENT = 'GitHub-Migration-Toolkit/1.0'


class RestClient:
    """
    Base class for the platform REST clients.

    Attributes:
        base_url (str): Root URL every relative path is joined to
        platform (str): Human-readable platform name used in error messages
        session (requests.Session): Authenticated session for API calls
        logger (MigrationLogger): Logger for retry and debug output
    """

    platform = 'API'

    def __init__(self, base_url: str, logger: Optional[MigrationLogger] = None,
                 max_retries: int = 3, sleep: Optional[Callable[[float], None]] = None) -> None:
        if not base_url or not base_url.strip():
            raise ValidationError(f"{self.platform} base URL cannot be empty")

        self.base_url = base_url.strip().rstrip('/')
        self.logger = logger
        self.max_retries = max_retries
        self._sleep = sleep or time.sleep

        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': USER_AGENT
        })

    def url(self, path: str) -> str:
        """Join a relative path to the base URL; absolute URLs pass through."""
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _log_debug(self, message: str) -> None:
        if self.logger:
            self.logger.verbose(message)

    def _log_warning(self, message: str) -> None:
        if self.logger:
            self.logger.warning(message)

    def _calculate_wait_time(self, response: requests.Response, attempt: int) -> float:
        """
        Work out how long to wait before retrying a throttled or failed call.

        Retry-After wins, then the rate limit reset header, then exponential
        backoff capped at 30 seconds.
        """
        headers = response.headers

        if 'Retry-After' in headers:
            try:
                return float(headers['Retry-After'])
            except (ValueError, TypeError):
                pass

        if headers.get('X-RateLimit-Remaining') == '0' and headers.get('X-RateLimit-Reset'):
            try:
                wait_time = int(headers['X-RateLimit-Reset']) - time.time() + 1
                return min(max(wait_time, 0), 300)
            except (ValueError, TypeError):
                pass

        return min(2 ** attempt, 30)

    def _is_rate_limited(self, response: requests.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            if response.headers.get('X-RateLimit-Remaining') == '0' or 'Retry-After' in response.headers:
                return True
            text = (response.text or '').lower()
            return 'rate limit' in text or 'abuse' in text
        return False

    def _make_request_with_retry(self, method: str, url: str, max_retries: Optional[int] = None,
                                 **kwargs) -> requests.Response:
        """
        Make an HTTP request, retrying on rate limits and transient errors.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            max_retries: Override of the client-wide retry count; 0 disables retries
            **kwargs: Additional arguments for requests

        Returns:
            The final response, successful or not

        Raises:
            NetworkError: If the request could not be sent after all retries
        """
        if max_retries is None:
            max_retries = self.max_retries
        last_exception = None

        for attempt in range(max_retries + 1):
            try:
                self._log_debug(f"HTTP {method}: {url}")
                response = self.session.request(method, url, **kwargs)
                self._log_debug(f"RESPONSE ({response.status_code}): {url}")

                if response.status_code < 400:
                    return response

                retryable = (self._is_rate_limited(response)
                             or response.status_code >= 500
                             or response.status_code == 408)

                if retryable and attempt < max_retries:
                    wait_time = self._calculate_wait_time(response, attempt)
                    self._log_warning(
                        f"{self.platform} request failed with status {response.status_code}. "
                        f"Waiting {wait_time:.0f}s before retry {attempt + 1}/{max_retries}"
                    )
                    self._sleep(wait_time)
                    continue

                return response

            except requests.exceptions.RequestException as e:
                last_exception = e
                if attempt < max_retries:
                    self._sleep(min(2 ** attempt, 30))
                    continue
                break

        raise NetworkError(f"Network error communicating with {self.platform} after {max_retries} retries: {last_exception}")

    def _raise_for_status(self, response: requests.Response, not_found_message: Optional[str] = None) -> None:
        """Translate an unsuccessful response into the matching toolkit exception."""
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                raise AuthenticationError(f"{self.platform} authentication failed. Please check your token.", status_code=401)
            elif status == 403:
                raise AuthenticationError(
                    f"{self.platform} API access forbidden. Please check your token permissions. {self._error_detail(response)}".strip(),
                    status_code=403
                )
            elif status == 404:
                raise APIError(not_found_message or f"{self.platform} resource not found: {response.url}", status_code=404)
            else:
                raise APIError(f"{self.platform} API error: {e} {self._error_detail(response)}".strip(), status_code=status)

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or ''
        if isinstance(data, dict):
            return str(data.get('message') or data.get('errors') or '')
        return ''

    def request(self, method: str, path: str, not_found_message: Optional[str] = None,
                max_retries: Optional[int] = None, **kwargs) -> requests.Response:
        response = self._make_request_with_retry(method, self.url(path), max_retries=max_retries, **kwargs)
        self._raise_for_status(response, not_found_message)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise APIError(f"Invalid JSON in response from {response.url}", status_code=response.status_code)

    def get(self, path: str, **kwargs) -> Any:
        return self._json(self.request('GET', path, **kwargs))

    def post(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self._json(self.request('POST', path, json=payload, **kwargs))

    def put(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self._json(self.request('PUT', path, json=payload, **kwargs))

    def patch(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self._json(self.request('PATCH', path, json=payload, **kwargs))

    def delete(self, path: str, **kwargs) -> Any:
        return self._json(self.request('DELETE', path, **kwargs))

    def get_all(self, path: str, items: Optional[Callable[[Any], List[Dict[str, Any]]]] = None) -> Iterator[Dict[str, Any]]:
        """
        Iterate over every item of a paginated collection.

        Follows the rel="next" Link header until the last page. By default each
        page body is the list of items; pass items to pull the list out of a
        wrapping object instead.
        """
        url = self.url(path)
        while url:
            response = self.request('GET', url)
            data = self._json(response)
            page = items(data) if items else data
            for item in page or []:
                yield item
            url = response.links.get('next', {}).get('url')
