"""Shared pytest fixtures for outlook-mail-mcp tests."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from outlook_mail_mcp.executor import GraphClient
from outlook_mail_mcp.folders import FolderMap

GRAPH = "https://graph.test/v1.0/"


class FakeGraph:
    """
    Scripted Graph backend for httpx.MockTransport.

    Either set ``handler`` to compute a response per request, or queue
    responses that are served in order. Every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] | None = None
        self._queue: list[httpx.Response] = []

    def queue(self, *responses: httpx.Response) -> None:
        self._queue.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        if not self._queue:
            raise AssertionError(f"Unexpected request: {request.url}")
        return self._queue.pop(0)

    def params(self, index: int = -1) -> dict[str, str]:
        """Decoded query parameters of a recorded request."""
        return dict(self.requests[index].url.params)

    def url(self, index: int = -1) -> str:
        return str(self.requests[index].url)


def graph_page(
    items: list[dict],
    next_link: str | None = None,
    delta_link: str | None = None,
    count: int | None = None,
) -> httpx.Response:
    """A 200 collection response in Graph's shape."""
    body: dict = {"value": items}
    if next_link:
        body["@odata.nextLink"] = next_link
    if delta_link:
        body["@odata.deltaLink"] = delta_link
    if count is not None:
        body["@odata.count"] = count
    return httpx.Response(200, json=body)


def graph_error(status: int, code: str = "BadRequest") -> httpx.Response:
    return httpx.Response(
        status, json={"error": {"code": code, "message": "rejected"}}
    )


def messages(prefix: str, n: int) -> list[dict]:
    return [
        {"id": f"{prefix}{i}", "subject": f"Message {i}"} for i in range(n)
    ]


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def graph_client(fake_graph: FakeGraph) -> GraphClient:
    """GraphClient wired to the fake backend with a fixed token."""
    return GraphClient(
        endpoint=GRAPH,
        token_provider=lambda: "test-token",
        timeout=5,
        transport=httpx.MockTransport(fake_graph),
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the developer's environment and token store."""
    for var in (
        "OUTLOOK_MCP_GRAPH_ENDPOINT",
        "OUTLOOK_MCP_ACCESS_TOKEN",
        "OUTLOOK_MCP_DEFAULT_FOLDER",
        "OUTLOOK_MCP_REQUEST_TIMEOUT",
        "OUTLOOK_MCP_MAX_PAGE_SIZE",
        "OUTLOOK_MCP_MAX_RESULT_COUNT",
        "OUTLOOK_MCP_DELTA_MAX_PAGE_SIZE",
        "OUTLOOK_MCP_DELTA_MAX_PAGES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OUTLOOK_MCP_TOKEN_PATH", str(tmp_path / "tokens.json"))


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop shared instances between tests."""
    GraphClient._instance = None
    FolderMap._instance = None
    yield
    GraphClient._instance = None
    FolderMap._instance = None
