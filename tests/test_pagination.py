"""Tests for pagination.py - cursor-following pagination."""

from __future__ import annotations

import httpx
import pytest
from conftest import GRAPH, graph_error, graph_page, messages

from outlook_mail_mcp.builders import ORDER_BY_RECENT, RequestShape
from outlook_mail_mcp.executor import GraphRequestError, GraphTransportError
from outlook_mail_mcp.pagination import Cursor, FreshShape, fetch, paginate

SHAPE = RequestShape(
    select=("id", "subject"),
    top=10,
    filter="isRead eq false",
    orderby=ORDER_BY_RECENT,
)


def cursor(n: int) -> str:
    return f"{GRAPH}me/messages?$skiptoken=page{n}"


class TestFetch:
    """Tests for fetch() with each request kind."""

    @pytest.mark.asyncio
    async def test_fresh_shape_sends_params(self, graph_client, fake_graph):
        fake_graph.queue(graph_page([]))

        await fetch(graph_client, FreshShape("me/messages", SHAPE))

        assert fake_graph.params() == {
            "$top": "10",
            "$select": "id,subject",
            "$filter": "isRead eq false",
            "$orderby": "receivedDateTime desc",
        }

    @pytest.mark.asyncio
    async def test_cursor_is_verbatim(self, graph_client, fake_graph):
        fake_graph.queue(graph_page([]))

        await fetch(graph_client, Cursor(cursor(2)))

        assert fake_graph.url() == cursor(2)


class TestPaginate:
    """Tests for paginate()."""

    @pytest.mark.asyncio
    async def test_single_page(self, graph_client, fake_graph):
        fake_graph.queue(graph_page(messages("m", 3)))

        page = await paginate(graph_client, "me/messages", SHAPE, 10)

        assert [m["id"] for m in page.items] == ["m0", "m1", "m2"]
        assert page.requests == 1
        assert page.has_more is False
        assert page.truncated is False

    @pytest.mark.asyncio
    async def test_follows_cursors(self, graph_client, fake_graph):
        fake_graph.queue(
            graph_page(messages("a", 10), next_link=cursor(2)),
            graph_page(messages("b", 10), next_link=cursor(3)),
            graph_page(messages("c", 5)),
        )

        page = await paginate(graph_client, "me/messages", SHAPE, 0)

        assert len(page.items) == 25
        assert page.requests == 3
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_cursor_requests_carry_no_params(
        self, graph_client, fake_graph
    ):
        """Follow-up requests are exactly the server's nextLink."""
        fake_graph.queue(
            graph_page(messages("a", 10), next_link=cursor(2)),
            graph_page(messages("b", 2)),
        )

        await paginate(graph_client, "me/messages", SHAPE, 0)

        assert fake_graph.url(1) == cursor(2)
        assert fake_graph.params(1) == {"$skiptoken": "page2"}

    @pytest.mark.asyncio
    async def test_stops_at_cap(self, graph_client, fake_graph):
        """No page is requested once max_count items are in hand."""
        fake_graph.queue(
            graph_page(messages("a", 10), next_link=cursor(2)),
            graph_page(messages("b", 10), next_link=cursor(3)),
        )

        page = await paginate(graph_client, "me/messages", SHAPE, 15)

        assert len(page.items) == 15
        assert page.requests == 2
        assert page.has_more is True
        assert page.items[-1]["id"] == "b4"

    @pytest.mark.asyncio
    async def test_exact_cap_with_next_link(self, graph_client, fake_graph):
        fake_graph.queue(graph_page(messages("a", 10), next_link=cursor(2)))

        page = await paginate(graph_client, "me/messages", SHAPE, 10)

        assert len(page.items) == 10
        assert page.requests == 1
        assert page.has_more is True
        assert page.next_link == cursor(2)

    @pytest.mark.asyncio
    async def test_empty_result(self, graph_client, fake_graph):
        fake_graph.queue(graph_page([]))

        page = await paginate(graph_client, "me/messages", SHAPE, 5)

        assert page.items == []
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_total_count_hint(self, graph_client, fake_graph):
        fake_graph.queue(graph_page(messages("a", 2), count=42))

        page = await paginate(graph_client, "me/messages", SHAPE, 5)

        assert page.total_count == 42

    @pytest.mark.asyncio
    async def test_transport_error_after_first_page(
        self, graph_client, fake_graph
    ):
        """A failed follow-up keeps what was gathered and flags it."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return graph_page(messages("a", 10), next_link=cursor(2))
            raise httpx.ConnectError("reset", request=request)

        fake_graph.handler = handler

        page = await paginate(graph_client, "me/messages", SHAPE, 0)

        assert len(page.items) == 10
        assert page.truncated is True
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_transport_error_on_first_page(
        self, graph_client, fake_graph
    ):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        fake_graph.handler = handler

        with pytest.raises(GraphTransportError):
            await paginate(graph_client, "me/messages", SHAPE, 0)

    @pytest.mark.asyncio
    async def test_request_error_on_first_page_propagates(
        self, graph_client, fake_graph
    ):
        fake_graph.queue(graph_error(400))

        with pytest.raises(GraphRequestError):
            await paginate(graph_client, "me/messages", SHAPE, 0)

    @pytest.mark.asyncio
    async def test_throttled_follow_up_keeps_items(
        self, graph_client, fake_graph
    ):
        fake_graph.queue(
            graph_page(messages("a", 5), next_link=cursor(2)),
            graph_error(429, "TooManyRequests"),
        )

        page = await paginate(graph_client, "me/messages", SHAPE, 20)

        assert [m["id"] for m in page.items] == [f"a{i}" for i in range(5)]
        assert page.requests == 1
        assert page.truncated is True
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_server_error_follow_up_keeps_items(
        self, graph_client, fake_graph
    ):
        fake_graph.queue(
            graph_page(messages("a", 10), next_link=cursor(2)),
            graph_page(messages("b", 10), next_link=cursor(3)),
            graph_error(503, "ServiceUnavailable"),
        )

        page = await paginate(graph_client, "me/messages", SHAPE, 0)

        assert len(page.items) == 20
        assert page.truncated is True

    @pytest.mark.asyncio
    async def test_rejects_non_get(self, graph_client, fake_graph):
        with pytest.raises(ValueError, match="only supports GET"):
            await paginate(graph_client, "me/messages", SHAPE, method="POST")

        assert fake_graph.requests == []
