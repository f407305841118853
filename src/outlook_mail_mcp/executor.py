"""Microsoft Graph request execution.

Provides:
- GraphClient: async Graph transport over httpx with a shared instance
- build_graph_url(): Turn a relative path + query params into a Graph URL
- GraphError and subclasses: the error surface the engine reacts to

Absolute URLs (continuation cursors, delta tokens) are requested verbatim;
nothing is ever appended to them.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from .config import get_access_token, get_graph_endpoint, get_request_timeout

logger = logging.getLogger(__name__)

# Error codes Graph uses to say a delta token can no longer be used
_RESYNC_CODES = {"resyncRequired", "SyncStateNotFound", "SyncStateInvalid"}

_BODY_METHODS = {"POST", "PATCH", "PUT"}


class GraphError(Exception):
    """Raised when a Graph call fails."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str = ""
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GraphAuthError(GraphError):
    """No usable access token, or Graph answered 401."""


class GraphRequestError(GraphError):
    """Graph rejected the request (malformed filter/search, 4xx, 5xx)."""


class GraphResyncRequiredError(GraphError):
    """A delta token has expired and the sync must restart from scratch."""


class GraphTransportError(GraphError):
    """The request never got an HTTP answer."""


class GraphTimeoutError(GraphTransportError):
    """The request exceeded the client timeout."""


def _preview(text: str, limit: int = 500) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _error_code(body: str) -> str | None:
    """Extract ``error.code`` from a Graph error body, if there is one."""
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return payload["error"].get("code")
    return None


def build_graph_url(
    endpoint: str, path: str, params: dict[str, Any] | None = None
) -> str:
    """
    Build the full URL for a Graph request.

    Absolute http(s) URLs are returned untouched. Relative paths have
    each segment percent-encoded and are joined to the endpoint. Query
    values are encoded with %20 for spaces ($filter rejects '+') and
    the OData '$' prefix is kept literal.

    Example:
        >>> build_graph_url("https://graph.microsoft.com/v1.0/",
        ...                 "me/messages", {"$top": 10})
        'https://graph.microsoft.com/v1.0/me/messages?$top=10'
    """
    if path.startswith(("https://", "http://")):
        return path

    encoded_path = "/".join(
        quote(segment, safe="$") for segment in path.lstrip("/").split("/")
    )
    url = endpoint + encoded_path
    if params:
        url += "?" + urlencode(params, quote_via=quote, safe="$")
    return url


def _parse_response(response: httpx.Response) -> dict[str, Any]:
    """Map a Graph HTTP response to a payload dict or a GraphError."""
    status = response.status_code
    text = response.text

    if status == 401:
        raise GraphAuthError("UNAUTHORIZED", status, text)

    if not response.is_success:
        if status == 410 or _error_code(text) in _RESYNC_CODES:
            raise GraphResyncRequiredError(
                f"Resync required (status {status}): {_preview(text)}",
                status,
                text,
            )
        raise GraphRequestError(
            f"API call failed with status {status}: {_preview(text)}",
            status,
            text,
        )

    if status == 204 or not text.strip():
        return {}

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise GraphError(
            f"Error parsing API response: {e}\nOutput: {_preview(text)}",
            status,
            text,
        ) from e


class GraphClient:
    """
    Async Microsoft Graph transport.

    One httpx.AsyncClient is created lazily and reused. Every request
    carries a fresh bearer token from the token provider and is bounded
    by the configured timeout.

    Use get_instance() inside the MCP server; tests construct their own
    client with an httpx.MockTransport.
    """

    _instance: GraphClient | None = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        endpoint: str | None = None,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the GraphClient.

        Args:
            endpoint: Graph base URL (uses config default if None)
            token_provider: Callable returning a bearer token or None
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (mocking, proxies)
        """
        self._endpoint = endpoint or get_graph_endpoint()
        self._token_provider = token_provider or get_access_token
        self._timeout = (
            timeout if timeout is not None else get_request_timeout()
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def get_instance(cls) -> GraphClient:
        """Get the shared GraphClient instance (thread-safe)."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = GraphClient()
            return cls._instance

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> dict[str, Any]:
        """
        Issue one Graph request and return the decoded JSON payload.

        Args:
            method: HTTP method
            path: Path relative to the endpoint, or an absolute URL
                (cursor/delta link) which is used verbatim
            params: Query parameters (ignored for absolute URLs)
            body: JSON body, sent only for POST/PATCH/PUT

        Returns:
            Decoded JSON object ({} for empty or 204 responses)

        Raises:
            GraphAuthError: No token available, or 401
            GraphResyncRequiredError: Expired delta token (410)
            GraphRequestError: Any other non-2xx status
            GraphTimeoutError: The request timed out
            GraphTransportError: Connection-level failure
        """
        token = self._token_provider()
        if not token:
            raise GraphAuthError("Authentication required")

        method = method.upper()
        url = build_graph_url(self._endpoint, path, params)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        content = None
        if method in _BODY_METHODS and body is not None:
            content = json.dumps(body)

        logger.debug("Graph %s %s", method, url)

        try:
            response = await self._get_client().request(
                method, url, headers=headers, content=content
            )
        except httpx.TimeoutException as e:
            raise GraphTimeoutError(f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise GraphTransportError(
                f"Network error during API call: {e}"
            ) from e

        return _parse_response(response)
