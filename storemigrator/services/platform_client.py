"""
HTTP client for the remote e-commerce platform REST API.

All adapters share one PlatformClient per run. Transient failures (429 and
5xx) are retried by the session's urllib3 Retry policy with exponential
backoff plus jitter; anything else comes back as an ApiResponse so callers
can record the verbatim body on the ledger.
"""
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..utils.extraction import get_path

logger = logging.getLogger(__name__)

RETRY_STATUSES = [429, 500, 502, 503, 504]


class ApiResponse:
    """Status, raw body and parsed JSON of one remote call."""

    def __init__(self, status: int, body: str = '', data: Any = None, content: bytes = b'', headers=None):
        self.status = status
        self.body = body or ''
        self.data = data if data is not None else {}
        self.content = content
        self.headers = headers or {}

    @classmethod
    def from_requests(cls, response: requests.Response) -> 'ApiResponse':
        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {'items': data}
        return cls(response.status_code, response.text, data, response.content, dict(response.headers))

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json_path(self, path: str, default=None):
        return get_path(self.data, path, default)

    def error(self) -> str:
        """Diagnostic text for ledger entries."""
        return f'HTTP {self.status}: {self.body}' if self.body else f'HTTP {self.status}'

    def __repr__(self):
        return f'<ApiResponse {self.status}>'


def auth_header(token: str) -> str:
    """Bearer-prefix a raw token; leave prefixed tokens alone."""
    token = (token or '').strip()
    if token.lower().startswith('bearer '):
        return token
    return f'Bearer {token}'


class PlatformClient:
    """
    Thin REST wrapper around a retrying requests.Session.

    Args:
        base_url: API root, e.g. https://www.wixapis.com
        timeout: Per-request timeout in seconds
        max_retries: Attempts after the first for retryable statuses
        backoff_factor: urllib3 exponential backoff factor
        backoff_jitter: Random seconds added to each backoff
        session: Preconfigured session (tests)
    """

    def __init__(
        self,
        base_url: str = 'https://www.wixapis.com',
        timeout: int = 60,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        backoff_jitter: float = 0.4,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or self._create_session(max_retries, backoff_factor, backoff_jitter)

    @classmethod
    def from_config(cls, config) -> 'PlatformClient':
        """Build from a Flask config mapping."""
        return cls(
            base_url=config.get('PLATFORM_API_BASE', 'https://www.wixapis.com'),
            timeout=config.get('PLATFORM_HTTP_TIMEOUT', 60),
            max_retries=config.get('PLATFORM_MAX_RETRIES', 3),
            backoff_factor=config.get('PLATFORM_RETRY_BACKOFF', 0.5),
            backoff_jitter=config.get('PLATFORM_RETRY_JITTER', 0.4),
        )

    @staticmethod
    def _create_session(max_retries: int, backoff_factor: float, backoff_jitter: float) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            backoff_jitter=backoff_jitter,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=None,  # retry POST/PATCH too
            raise_on_status=False,
            respect_retry_after_header=True,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount('https://', adapter)
        session.mount('http://', adapter)

        return session

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, token: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            'Authorization': auth_header(token),
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        token: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> ApiResponse:
        url = self._url(path)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(token, headers),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            return ApiResponse(0, f'Connection error: {e}')

        result = ApiResponse.from_requests(response)
        if not result.ok:
            logger.debug(f"{method} {url} -> {result.status}")
        return result

    def get(self, token: str, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> ApiResponse:
        return self.request('GET', token, path, params=params, **kwargs)

    def post(self, token: str, path: str, json: Any = None, **kwargs) -> ApiResponse:
        return self.request('POST', token, path, json=json if json is not None else {}, **kwargs)

    def patch(self, token: str, path: str, json: Any = None, **kwargs) -> ApiResponse:
        return self.request('PATCH', token, path, json=json if json is not None else {}, **kwargs)

    def delete(self, token: str, path: str, **kwargs) -> ApiResponse:
        return self.request('DELETE', token, path, **kwargs)

    # ==================== FILE TRANSFER ====================

    def upload(self, url: str, content: bytes, mime_type: str = 'application/octet-stream') -> ApiResponse:
        """PUT raw bytes to a destination-provided signed upload URL."""
        try:
            response = self._session.put(
                url,
                data=content,
                headers={'Content-Type': mime_type},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            return ApiResponse(0, f'Connection error: {e}')
        return ApiResponse(response.status_code, response.text)
