"""
Outlook Mail MCP Server

Provides MCP tools for querying an Outlook mailbox through Microsoft Graph.
Searches fall back through progressively simpler request shapes until one
returns results; listings follow continuation cursors; delta sync hands a
token back to the caller for the next incremental call.

TOOLS (7 total):
- search_emails(query?, sender?, ...) - Progressive search with fallback
- list_emails(folder?, count?) - Newest-first listing of a folder
- read_email(email_id) - One email by Graph id
- search_by_message_id(message_id) - Exact Message-ID header lookup
- list_conversations(folder?, count?) - Recent threads in a folder
- get_conversation(conversation_id) - Every email in one thread
- list_emails_delta(folder?, delta_token?) - Incremental folder sync
"""

from __future__ import annotations

import asyncio
from typing import Any, Literal

from typing_extensions import TypedDict

from fastmcp import FastMCP

from .builders import (
    ORDER_BY_OLDEST,
    ORDER_BY_RECENT,
    QueryCriteria,
    RequestShape,
    escape_odata_string,
)
from .config import (
    DEFAULT_CONVERSATION_COUNT,
    DEFAULT_LIST_COUNT,
    DEFAULT_SEARCH_COUNT,
    DEFAULT_THREAD_COUNT,
    get_default_folder,
    get_max_page_size,
    get_max_result_count,
)
from .delta import SyncOutcome, SyncState, sync_page
from .executor import GraphClient, GraphRequestError
from .fields import fields_for
from .folders import (
    ALL_MESSAGES_ENDPOINT,
    FolderMap,
    delta_endpoint,
    messages_endpoint,
)
from .pagination import paginate
from .search import progressive_search

mcp = FastMCP("Outlook Mail")

Verbosity = Literal["minimal", "standard", "full"]

# Recent emails grouped by list_conversations
CONVERSATION_SCAN_COUNT = 200


# ========== Response Type Definitions ==========


class StrategyAttemptInfo(TypedDict, total=False):
    """One search strategy that was tried."""

    strategy: str
    count: int
    error: str


class SearchResponse(TypedDict):
    """Result from search_emails."""

    emails: list[dict[str, Any]]
    returned: int
    total_available: int | None
    has_more: bool
    strategy: str
    outcome: str
    attempts: list[StrategyAttemptInfo]


class ListResponse(TypedDict):
    """Result from list_emails."""

    emails: list[dict[str, Any]]
    folder: str
    returned: int
    has_more: bool


class MessageIdResponse(TypedDict):
    """Result from search_by_message_id."""

    message_id: str
    found: int
    emails: list[dict[str, Any]]


class ConversationInfo(TypedDict, total=False):
    """One thread in list_conversations."""

    conversation_id: str
    subject: str
    message_count: int
    unread_count: int
    participants: list[str]
    first_received: str | None
    last_received: str | None
    latest_preview: str


class ConversationListResponse(TypedDict):
    """Result from list_conversations."""

    folder: str
    conversations: list[ConversationInfo]
    messages_scanned: int


class ConversationResponse(TypedDict):
    """Result from get_conversation."""

    conversation_id: str
    emails: list[dict[str, Any]]
    returned: int
    has_more: bool


class ChangeInfo(TypedDict, total=False):
    """One delta change."""

    id: str
    change_type: str
    reason: str
    email: dict[str, Any]


class DeltaSummary(TypedDict):
    created_or_updated: int
    removed: int


class DeltaResponse(TypedDict, total=False):
    """Result from list_emails_delta."""

    folder: str
    sync_type: str
    outcome: str
    complete: bool
    has_more: bool
    changes: list[ChangeInfo]
    summary: DeltaSummary
    delta_token: str | None
    message: str


# ========== Helper Functions ==========


def _get_client() -> GraphClient:
    """Get the shared GraphClient."""
    return GraphClient.get_instance()


def _get_folder_map() -> FolderMap:
    return FolderMap.get_instance()


def _resolve_folder(folder: str | None) -> str:
    """Resolve folder, using default from env if not specified."""
    return folder if folder else get_default_folder()


def _clamp_count(count: int) -> int:
    """Keep a requested result count within 1..OUTLOOK_MCP_MAX_RESULT_COUNT."""
    return max(1, min(count, get_max_result_count()))


def _listing_preset(verbosity: Verbosity) -> str:
    return "search" if verbosity == "full" else "list"


def _read_preset(verbosity: Verbosity, include_headers: bool) -> str:
    if include_headers:
        return "forensic"
    return "list" if verbosity == "minimal" else "read"


def _group_conversations(
    emails: list[dict[str, Any]], verbosity: Verbosity
) -> list[ConversationInfo]:
    """Group newest-first emails by conversationId, newest thread first."""
    threads: dict[str, ConversationInfo] = {}
    for email in emails:
        conversation_id = email.get("conversationId") or email.get("id", "")
        received = email.get("receivedDateTime")
        thread = threads.get(conversation_id)
        if thread is None:
            thread = threads[conversation_id] = {
                "conversation_id": conversation_id,
                "subject": email.get("subject") or "(no subject)",
                "message_count": 0,
                "unread_count": 0,
                "participants": [],
                "first_received": received,
                "last_received": received,
            }
            if verbosity == "full":
                thread["latest_preview"] = email.get("bodyPreview") or ""

        thread["message_count"] += 1
        thread["first_received"] = received
        if not email.get("isRead", True):
            thread["unread_count"] += 1
        address = (
            (email.get("from") or {}).get("emailAddress", {}).get("address")
        )
        if address and address not in thread["participants"]:
            thread["participants"].append(address)

    return list(threads.values())


# One lock per resolved folder: a delta token must not be advanced by two
# calls. Unknown names resolve to inbox, so keys are bounded by the mailbox.
_delta_locks: dict[str, asyncio.Lock] = {}


def _delta_lock(folder_id: str) -> asyncio.Lock:
    if folder_id not in _delta_locks:
        _delta_locks[folder_id] = asyncio.Lock()
    return _delta_locks[folder_id]


# ========== MCP Tools (7 total) ==========


@mcp.tool
async def search_emails(
    query: str | None = None,
    sender: str | None = None,
    recipient: str | None = None,
    subject: str | None = None,
    kql: str | None = None,
    has_attachments: bool | None = None,
    unread_only: bool | None = None,
    received_after: str | None = None,
    received_before: str | None = None,
    folder: str | None = None,
    search_all_folders: bool = False,
    count: int = DEFAULT_SEARCH_COUNT,
    verbosity: Verbosity = "standard",
) -> SearchResponse:
    """
    Search emails, falling back to simpler queries when needed.

    Graph rejects some combinations (e.g. an address filter with
    sorting, or $search mixed with some filters). The search tries the
    full query first, then one criterion at a time, then boolean
    filters alone, and finally the most recent emails. The response
    names the strategy that produced the results.

    Args:
        query: Free-text search terms
        sender: Sender address (exact) or name (contains)
        recipient: To recipient address (exact) or name (contains)
        subject: Subject search term
        kql: Raw KQL expression, tried before everything else
        has_attachments: Only emails with attachments
        unread_only: Only unread emails
        received_after: ISO date, inclusive lower bound
        received_before: ISO date, inclusive upper bound
        folder: Folder to search. Uses OUTLOOK_MCP_DEFAULT_FOLDER env var
                or "inbox" if not specified.
        search_all_folders: Search every folder instead of one
        count: Maximum results (default: 10)
        verbosity: "minimal"/"standard" list fields, "full" adds body
                   preview and recipients

    Returns:
        Emails plus strategy, attempts, and paging metadata.

    Examples:
        >>> search_emails(sender="boss@company.com", count=5)
        >>> search_emails(query="quarterly report", unread_only=True)
    """
    criteria = QueryCriteria(
        free_text=query,
        raw_query=kql,
        sender=sender,
        recipient=recipient,
        subject=subject,
        has_attachments=has_attachments,
        unread_only=unread_only,
        received_after=received_after,
        received_before=received_before,
        search_all_folders=search_all_folders,
        folder=_resolve_folder(folder),
    )
    client = _get_client()

    if criteria.search_all_folders:
        endpoint = ALL_MESSAGES_ENDPOINT
    else:
        folder_id = await _get_folder_map().resolve(client, criteria.folder)
        endpoint = messages_endpoint(folder_id)

    result = await progressive_search(
        client,
        endpoint,
        criteria,
        _clamp_count(count),
        preset=_listing_preset(verbosity),
    )

    attempts: list[StrategyAttemptInfo] = []
    for attempt in result.attempts:
        info: StrategyAttemptInfo = {
            "strategy": attempt.strategy,
            "count": attempt.count,
        }
        if attempt.error:
            info["error"] = attempt.error
        attempts.append(info)

    return {
        "emails": result.items,
        "returned": len(result.items),
        "total_available": result.page.total_count,
        "has_more": result.page.has_more,
        "strategy": result.strategy,
        "outcome": result.outcome.value,
        "attempts": attempts,
    }


@mcp.tool
async def list_emails(
    folder: str | None = None,
    count: int = DEFAULT_LIST_COUNT,
    verbosity: Verbosity = "standard",
) -> ListResponse:
    """
    List the most recent emails in a folder.

    Args:
        folder: Folder name or well-known name (inbox, sent, drafts,
                trash, junk, archive). Uses OUTLOOK_MCP_DEFAULT_FOLDER
                env var or "inbox" if not specified.
        count: Maximum number of emails (default: 25)
        verbosity: "full" includes body preview and recipients

    Returns:
        Emails sorted by received date (newest first).

    Example:
        >>> list_emails("sent", count=10)
    """
    name = _resolve_folder(folder)
    client = _get_client()
    folder_id = await _get_folder_map().resolve(client, name)

    max_count = _clamp_count(count)
    shape = RequestShape(
        select=fields_for(_listing_preset(verbosity)),
        top=min(max_count, get_max_page_size()),
        orderby=ORDER_BY_RECENT,
    )
    page = await paginate(
        client, messages_endpoint(folder_id), shape, max_count
    )
    return {
        "emails": page.items,
        "folder": name,
        "returned": len(page.items),
        "has_more": page.has_more,
    }


@mcp.tool
async def read_email(
    email_id: str,
    verbosity: Verbosity = "standard",
    include_headers: bool = False,
) -> dict[str, Any]:
    """
    Read a single email by its Graph id.

    Args:
        email_id: The "id" of an email from any other tool
        verbosity: "minimal" returns list fields only, otherwise the
                   full body and recipients
        include_headers: Add internet message headers for forensic use

    Returns:
        The email's fields as returned by Graph.

    Raises:
        ValueError: If email_id is empty or no such email exists
    """
    email_id = (email_id or "").strip()
    if not email_id:
        raise ValueError("Email ID is required.")

    try:
        return await _get_client().request(
            "GET",
            f"{ALL_MESSAGES_ENDPOINT}/{email_id}",
            params={
                "$select": ",".join(
                    fields_for(_read_preset(verbosity, include_headers))
                ),
            },
        )
    except GraphRequestError as e:
        if e.status_code == 404:
            raise ValueError(f"Email {email_id} not found.") from e
        raise


@mcp.tool
async def search_by_message_id(
    message_id: str,
    verbosity: Verbosity = "standard",
) -> MessageIdResponse:
    """
    Find an email by its Message-ID header, across all folders.

    Args:
        message_id: Full Message-ID including angle brackets,
                    e.g. "<abc123@example.com>"
        verbosity: "full" returns forensic headers, otherwise the
                   fields needed to read the email

    Returns:
        Matching emails (usually exactly one).

    Raises:
        ValueError: If message_id is empty
    """
    message_id = (message_id or "").strip()
    if not message_id:
        raise ValueError(
            "Message-ID is required. Provide the full Message-ID header "
            "value (e.g., <abc123@example.com>)"
        )

    preset = "forensic" if verbosity == "full" else "read"
    response = await _get_client().request(
        "GET",
        ALL_MESSAGES_ENDPOINT,
        params={
            "$filter": (
                f"internetMessageId eq '{escape_odata_string(message_id)}'"
            ),
            "$select": ",".join(fields_for(preset)),
            "$top": "10",
        },
    )
    emails = response.get("value") or []
    return {"message_id": message_id, "found": len(emails), "emails": emails}


@mcp.tool
async def list_conversations(
    folder: str | None = None,
    count: int = DEFAULT_CONVERSATION_COUNT,
    verbosity: Verbosity = "standard",
) -> ConversationListResponse:
    """
    List recent conversation threads in a folder.

    Scans the most recent emails in the folder and groups them by
    conversation. Threads older than the scan window are not listed.

    Args:
        folder: Folder name. Uses OUTLOOK_MCP_DEFAULT_FOLDER env var or
                "inbox" if not specified.
        count: Maximum number of threads (default: 20)
        verbosity: "full" adds a preview of each thread's latest email

    Returns:
        Threads newest first, each with message and unread counts,
        sender addresses, and the conversation_id for get_conversation.
    """
    name = _resolve_folder(folder)
    client = _get_client()
    folder_id = await _get_folder_map().resolve(client, name)

    shape = RequestShape(
        select=fields_for("conversation"),
        top=min(CONVERSATION_SCAN_COUNT, get_max_page_size()),
        orderby=ORDER_BY_RECENT,
    )
    page = await paginate(
        client, messages_endpoint(folder_id), shape, CONVERSATION_SCAN_COUNT
    )
    threads = _group_conversations(page.items, verbosity)
    return {
        "folder": name,
        "conversations": threads[: _clamp_count(count)],
        "messages_scanned": len(page.items),
    }


@mcp.tool
async def get_conversation(
    conversation_id: str,
    verbosity: Verbosity = "standard",
    include_headers: bool = False,
    newest_first: bool = False,
    count: int = DEFAULT_THREAD_COUNT,
) -> ConversationResponse:
    """
    Get every email in a conversation thread, across all folders.

    Args:
        conversation_id: The conversation_id from list_conversations or
                         an email's conversationId
        verbosity: "full" returns complete bodies and all recipients
        include_headers: Add internet message headers for forensic use
        newest_first: Reverse the default oldest-first order
        count: Maximum number of emails (default: 100)

    Returns:
        The thread's emails in received order.

    Raises:
        ValueError: If conversation_id is empty
    """
    conversation_id = (conversation_id or "").strip()
    if not conversation_id:
        raise ValueError("Conversation ID is required.")

    if include_headers:
        preset = "forensic"
    else:
        preset = "export" if verbosity == "full" else "conversation"
    max_count = _clamp_count(count)
    shape = RequestShape(
        select=fields_for(preset),
        top=min(max_count, get_max_page_size()),
        filter=(
            f"conversationId eq '{escape_odata_string(conversation_id)}'"
        ),
        orderby=ORDER_BY_RECENT if newest_first else ORDER_BY_OLDEST,
    )
    page = await paginate(
        _get_client(), ALL_MESSAGES_ENDPOINT, shape, max_count
    )
    return {
        "conversation_id": conversation_id,
        "emails": page.items,
        "returned": len(page.items),
        "has_more": page.has_more,
    }


@mcp.tool
async def list_emails_delta(
    folder: str | None = None,
    delta_token: str | None = None,
    max_results: int = 100,
) -> DeltaResponse:
    """
    Get emails changed in a folder since the last sync.

    Call without delta_token for an initial sync (every email comes
    back as created_or_updated). Pass the returned delta_token on the
    next call to get only what changed since. While has_more is true,
    keep calling with the newest token to finish the current pass.

    Graph does not distinguish created from updated emails; both are
    reported as created_or_updated.

    Args:
        folder: Folder to sync. Uses OUTLOOK_MCP_DEFAULT_FOLDER env var
                or "inbox" if not specified.
        delta_token: Token from the previous call (omit for initial sync)
        max_results: Page-size hint for an initial sync (max 200)

    Returns:
        Changes, a change summary, and the delta_token for the next call.
        If the token has expired, outcome is "resync_required" and the
        caller must start again without a token.
    """
    name = _resolve_folder(folder)
    client = _get_client()

    folder_id = await _get_folder_map().resolve(client, name)

    async with _delta_lock(folder_id):
        state = SyncState(folder=name, token=delta_token or None)
        result = await sync_page(
            client, state, max_results, endpoint=delta_endpoint(folder_id)
        )

    response: DeltaResponse = {
        "folder": name,
        "sync_type": result.sync_type.value,
        "outcome": result.outcome.value,
        "complete": state.complete,
        "has_more": result.has_more,
        "summary": {
            "created_or_updated": result.created_or_updated,
            "removed": result.removed,
        },
    }

    if result.outcome is SyncOutcome.RESYNC_REQUIRED:
        response["changes"] = []
        response["summary"] = {"created_or_updated": 0, "removed": 0}
        response["delta_token"] = None
        response["message"] = (
            "The delta token has expired. Start a new initial sync by "
            "calling without a delta_token."
        )
        return response

    changes: list[ChangeInfo] = []
    for change in result.changes:
        info: ChangeInfo = {
            "id": change.id,
            "change_type": change.kind.value,
            "email": change.item,
        }
        if change.reason:
            info["reason"] = change.reason
        changes.append(info)

    response["changes"] = changes
    response["delta_token"] = state.token
    return response


if __name__ == "__main__":
    mcp.run()
