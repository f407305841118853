"""Configuration for Outlook Mail MCP server."""

import json
import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)

# Default token store written by the companion auth flow
DEFAULT_TOKEN_PATH = Path.home() / ".outlook-mcp-tokens.json"

DEFAULT_GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0/"

# Result counts used when the caller does not ask for one
DEFAULT_SEARCH_COUNT = 10
DEFAULT_LIST_COUNT = 25
DEFAULT_CONVERSATION_COUNT = 20
DEFAULT_THREAD_COUNT = 100


def get_graph_endpoint() -> str:
    """
    Get the Microsoft Graph base URL.

    Set OUTLOOK_MCP_GRAPH_ENDPOINT to point at a different Graph cloud
    or a local mock. Always returned with a trailing slash.

    Returns:
        Graph API base URL.
    """
    endpoint = os.environ.get(
        "OUTLOOK_MCP_GRAPH_ENDPOINT", DEFAULT_GRAPH_ENDPOINT
    )
    return endpoint if endpoint.endswith("/") else endpoint + "/"


def get_token_path() -> Path:
    """
    Get the path of the OAuth token store.

    Set OUTLOOK_MCP_TOKEN_PATH to customize the location.
    Defaults to ~/.outlook-mcp-tokens.json

    Returns:
        Path to the token JSON file.
    """
    env_path = os.environ.get("OUTLOOK_MCP_TOKEN_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_TOKEN_PATH


def get_access_token() -> str | None:
    """
    Get a Graph access token.

    OUTLOOK_MCP_ACCESS_TOKEN wins when set. Otherwise the token store is
    read; a missing, unreadable or expired token yields None so the
    caller can report that authentication is required.

    Returns:
        Bearer token string, or None.
    """
    env_token = os.environ.get("OUTLOOK_MCP_ACCESS_TOKEN")
    if env_token:
        return env_token

    token_path = get_token_path()
    if not token_path.exists():
        return None

    try:
        tokens = json.loads(token_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not read token store %s: %s", token_path, e)
        return None

    access_token = tokens.get("access_token")
    if not access_token:
        return None

    # expires_at is epoch milliseconds
    expires_at = tokens.get("expires_at") or 0
    if time.time() * 1000 > expires_at:
        logger.debug("Access token in %s has expired", token_path)
        return None

    return access_token


def get_default_folder() -> str:
    """
    Get the default mail folder from environment variable.

    Set OUTLOOK_MCP_DEFAULT_FOLDER to use a specific folder by default.
    Defaults to "inbox".

    Returns:
        Folder name.
    """
    return os.environ.get("OUTLOOK_MCP_DEFAULT_FOLDER", "inbox")


def get_request_timeout() -> float:
    """
    Get the per-request timeout in seconds.

    Set OUTLOOK_MCP_REQUEST_TIMEOUT to customize.
    Defaults to 30 seconds.

    Returns:
        Timeout in seconds.
    """
    return float(os.environ.get("OUTLOOK_MCP_REQUEST_TIMEOUT", "30"))


def get_max_page_size() -> int:
    """
    Get the largest $top sent on a single retrieval request.

    Set OUTLOOK_MCP_MAX_PAGE_SIZE to customize.
    Defaults to 50.

    Returns:
        Page size cap.
    """
    return int(os.environ.get("OUTLOOK_MCP_MAX_PAGE_SIZE", "50"))


def get_max_result_count() -> int:
    """
    Get the most results a single list or search call may return.

    Set OUTLOOK_MCP_MAX_RESULT_COUNT to customize.
    Defaults to 100.

    Returns:
        Result count cap.
    """
    return int(os.environ.get("OUTLOOK_MCP_MAX_RESULT_COUNT", "100"))


# ========== Delta Sync Configuration ==========


def get_delta_max_page_size() -> int:
    """
    Get the largest page size hint for delta requests.

    Set OUTLOOK_MCP_DELTA_MAX_PAGE_SIZE to customize.
    Defaults to 200.

    Returns:
        Delta page size cap.
    """
    return int(os.environ.get("OUTLOOK_MCP_DELTA_MAX_PAGE_SIZE", "200"))


def get_delta_max_pages() -> int:
    """
    Get how many delta pages one sync call follows before pausing.

    A sync pass that needs more pages than this is left pending and the
    caller resumes it with the returned token. 0 means no limit.

    Set OUTLOOK_MCP_DELTA_MAX_PAGES to customize.
    Defaults to 50.

    Returns:
        Page budget per sync call.
    """
    return int(os.environ.get("OUTLOOK_MCP_DELTA_MAX_PAGES", "50"))
