"""WordPress REST HTTP Client.

Low-level HTTP client for the WordPress REST API (/wp-json).
Handles authentication headers, header-driven pagination, the batch
endpoint and error mapping. There are no retries: failures surface as
TransportError subclasses and the engines decide what to do with them.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import aiohttp

from core.errors import TransportError
from core.observability.logging import get_logger
from connectors.wordpress.wp_auth import WPAuthProvider

logger = get_logger(__name__)

# WordPress caps per_page at 100
MAX_PER_PAGE = 100
# WordPress rejects batches above 25 requests
MAX_BATCH_REQUESTS = 25


class WPApiError(TransportError):
    """Non-2xx response from the WordPress REST API."""
    pass


class WPAuthenticationError(WPApiError):
    """Authentication failed (401/403)."""
    pass


class WPNotFoundError(WPApiError):
    """Resource not found (404)."""
    pass


class WPRateLimitError(WPApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: int = 60, response_body: str = ""):
        super().__init__(message, 429, response_body)
        self.retry_after = retry_after


class WPValidationError(WPApiError):
    """Request rejected by WordPress (400)."""
    pass


@dataclass
class WPApiConfig:
    """Configuration for the WordPress API client."""
    base_url: str
    timeout_seconds: int = 30
    per_page: int = MAX_PER_PAGE
    default_headers: Dict[str, str] = field(default_factory=dict)

    def api_url(self, path: str) -> str:
        """Full URL for a path under /wp-json (e.g. "/wp/v2/posts")."""
        return f"{self.base_url.rstrip('/')}/wp-json{path}"


@dataclass
class WPResponse:
    """Decoded response body plus the headers pagination depends on."""
    status: int
    data: Any
    headers: Mapping[str, str]

    @property
    def total(self) -> int:
        return int(self.headers.get("x-wp-total", 0) or 0)

    @property
    def total_pages(self) -> Optional[int]:
        value = self.headers.get("x-wp-totalpages")
        return int(value) if value else None


class WPApiClient:
    """HTTP client for the WordPress REST API.

    Provides:
    - Authenticated API calls
    - Automatic pagination via X-WP-TotalPages
    - Batch requests with response normalization
    - Error mapping to TransportError subclasses

    Usage:
        client = WPApiClient(WPApiConfig("https://example.com"), auth_provider)
        await client.connect()
        posts = await client.get_all("/wp/v2/posts", {"status": "any"})
        await client.disconnect()
    """

    def __init__(self, api_config: WPApiConfig, auth_provider: Optional[WPAuthProvider] = None):
        self.api_config = api_config
        self.auth_provider = auth_provider or WPAuthProvider(None)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_authenticated(self) -> bool:
        return self.auth_provider.has_credentials

    async def connect(self) -> bool:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.api_config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return True

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self.api_config.default_headers,
        }
        auth_header = self.auth_provider.get_authorization_header()
        if auth_header:
            headers["Authorization"] = auth_header
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> WPResponse:
        """Make an API request.

        Args:
            method: HTTP method
            path: Path under /wp-json
            params: Query parameters
            data: JSON request body

        Returns:
            WPResponse with decoded JSON body and headers

        Raises:
            WPAuthenticationError: Authentication failed
            WPNotFoundError: Resource not found
            WPRateLimitError: Rate limit exceeded
            WPValidationError: Request rejected
            WPApiError: Other non-2xx responses
            TransportError: Network failure or timeout
        """
        if not self._session:
            raise TransportError("Not connected. Call connect() first.")

        url = self.api_config.api_url(path)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            async with self._session.request(
                method,
                url,
                headers=self._get_headers(),
                params=query,
                json=data,
            ) as response:
                response_text = await response.text()
                headers = {k.lower(): v for k, v in response.headers.items()}
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

        if status < 400:
            if status == 204 or not response_text:
                return WPResponse(status, {}, headers)
            try:
                return WPResponse(status, json.loads(response_text), headers)
            except json.JSONDecodeError as e:
                raise WPApiError(
                    f"Invalid JSON from {method} {path}: {e}", status, response_text
                ) from e

        if status in (401, 403):
            raise WPAuthenticationError(
                f"Authentication failed: {response_text[:200]}", status, response_text
            )
        if status == 404:
            raise WPNotFoundError(f"Resource not found: {path}", status, response_text)
        if status == 429:
            retry_after = int(headers.get("retry-after", 60) or 60)
            raise WPRateLimitError("Rate limit exceeded", retry_after, response_text)
        if status == 400:
            raise WPValidationError(
                f"Validation error: {response_text[:200]}", status, response_text
            )
        raise WPApiError(f"WP API error {status}: {response_text[:200]}", status, response_text)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> WPResponse:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, data: Any, params: Optional[Dict[str, Any]] = None) -> WPResponse:
        return await self._request("POST", path, params=params, data=data)

    async def put(self, path: str, data: Any) -> WPResponse:
        return await self._request("PUT", path, data=data)

    async def get_all(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        on_page: Optional[Callable[[int, int], None]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every page of a collection endpoint.

        Stops after X-WP-TotalPages pages. When the header is missing the
        listing continues until a short page is returned.
        """
        per_page = min(self.api_config.per_page, MAX_PER_PAGE)
        items: List[Dict[str, Any]] = []
        page = 1
        total_pages = 1

        while page <= total_pages:
            query = dict(params or {})
            query.update({"per_page": per_page, "page": page})
            response = await self.get(path, query)
            batch = response.data if isinstance(response.data, list) else []
            items.extend(batch)

            if response.total_pages is not None:
                total_pages = response.total_pages
            elif len(batch) == per_page:
                total_pages = page + 1

            if on_page:
                on_page(page, max(total_pages, 1))
            page += 1

        return items

    async def batch(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """POST to /batch/v1 and normalize the responses to request order.

        WordPress returns either a list of responses or an object keyed by
        request path. Requests with no matching response get status 500.

        Raises:
            ValueError: If more than MAX_BATCH_REQUESTS requests are given
        """
        if len(requests) > MAX_BATCH_REQUESTS:
            raise ValueError(
                f"Batch supports at most {MAX_BATCH_REQUESTS} requests, got {len(requests)}"
            )
        if not requests:
            return []

        logger.info(f"Batch update: {len(requests)} requests")
        response = await self.post("/batch/v1", {"requests": requests})
        return normalize_batch_responses(requests, response.data)


def normalize_batch_responses(requests: List[Dict[str, Any]], result: Any) -> List[Dict[str, Any]]:
    """Turn either batch response shape into a list aligned with requests."""
    responses = result.get("responses") if isinstance(result, dict) else result
    if isinstance(responses, list):
        normalized = []
        for index, _ in enumerate(requests):
            if index < len(responses) and isinstance(responses[index], dict):
                item = responses[index]
                normalized.append({"status": item.get("status", 200), "body": item.get("body", item)})
            else:
                normalized.append({"status": 500, "body": {"error": "No response for request"}})
        return normalized

    responses = responses if isinstance(responses, dict) else {}
    normalized = []
    for request in requests:
        item = responses.get(request.get("path"))
        if isinstance(item, dict):
            normalized.append({"status": item.get("status", 200), "body": item.get("body", item)})
        else:
            normalized.append({"status": 500, "body": {"error": "No response for path"}})
    return normalized
