"""Cursor-following pagination for Graph retrieval requests.

A logical query starts as a FreshShape (endpoint + RequestShape) and
continues as a Cursor (the server's ``@odata.nextLink``, used verbatim).
Keeping the two apart means filter parameters can never be re-attached to
a cursor request, which Graph rejects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .executor import GraphRequestError, GraphTransportError

if TYPE_CHECKING:
    from .builders import RequestShape
    from .executor import GraphClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FreshShape:
    """First request of a query: parameters built from a RequestShape."""

    endpoint: str
    shape: RequestShape


@dataclass(frozen=True)
class Cursor:
    """Follow-up request: an opaque server-issued URL."""

    url: str


NextRequest = FreshShape | Cursor


@dataclass
class Page:
    """Items accumulated across one or more Graph responses."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_link: str | None = None
    total_count: int | None = None
    truncated: bool = False
    has_more: bool = False
    requests: int = 0


async def fetch(client: GraphClient, request: NextRequest) -> dict[str, Any]:
    """Issue a single GET for either kind of NextRequest."""
    if isinstance(request, Cursor):
        return await client.request("GET", request.url)
    return await client.request(
        "GET", request.endpoint, params=request.shape.to_params()
    )


async def paginate(
    client: GraphClient,
    endpoint: str,
    shape: RequestShape,
    max_count: int = 0,
    method: str = "GET",
) -> Page:
    """
    Fetch a query and follow its continuation cursors.

    Stops when a response has no ``@odata.nextLink`` or once at least
    ``max_count`` items are in hand; no page is requested after the cap
    is met. The result is trimmed to ``max_count``.

    A transport failure or a rejected request (throttling, 5xx) on a
    follow-up page ends the walk early: the items gathered so far come
    back with ``truncated`` set. A failure on the first page propagates.

    Args:
        client: Graph transport
        endpoint: Relative path of the collection
        shape: Parameters of the first request
        max_count: Result cap (0 = unbounded)
        method: Must be GET

    Returns:
        Page with the accumulated items

    Raises:
        ValueError: For any method other than GET
    """
    if method.upper() != "GET":
        raise ValueError("Pagination only supports GET requests")

    page = Page()
    request: NextRequest | None = FreshShape(endpoint, shape)

    while request is not None:
        try:
            response = await fetch(client, request)
        except (GraphRequestError, GraphTransportError) as e:
            if page.requests == 0:
                raise
            logger.warning(
                "Pagination stopped after %d page(s), %d item(s): %s",
                page.requests,
                len(page.items),
                e,
            )
            page.truncated = True
            break

        page.requests += 1
        page.items.extend(response.get("value") or [])
        if page.total_count is None and "@odata.count" in response:
            page.total_count = response["@odata.count"]

        next_link = response.get("@odata.nextLink")
        page.next_link = next_link
        request = Cursor(next_link) if next_link else None

        if max_count > 0 and len(page.items) >= max_count:
            break

    overshoot = max_count > 0 and len(page.items) > max_count
    if overshoot:
        page.items = page.items[:max_count]

    page.has_more = page.truncated or overshoot or page.next_link is not None
    logger.debug(
        "Paginated %s: %d item(s) in %d request(s)",
        endpoint,
        len(page.items),
        page.requests,
    )
    return page
