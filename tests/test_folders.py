"""Tests for folders.py - folder name resolution and caching."""

from __future__ import annotations

import time

import pytest
from conftest import graph_page

from outlook_mail_mcp.folders import (
    FolderMap,
    delta_endpoint,
    messages_endpoint,
    well_known_name,
)


class TestWellKnownName:
    """Tests for well_known_name()."""

    def test_well_known(self):
        assert well_known_name("inbox") == "inbox"
        assert well_known_name("Drafts") == "drafts"

    def test_aliases(self):
        assert well_known_name("Sent") == "sentitems"
        assert well_known_name("trash") == "deleteditems"
        assert well_known_name("spam") == "junkemail"
        assert well_known_name(" Deleted Items ") == "deleteditems"

    def test_custom_folder(self):
        assert well_known_name("Projects") is None


class TestEndpoints:
    def test_messages_endpoint(self):
        assert messages_endpoint("inbox") == "me/mailFolders/inbox/messages"

    def test_delta_endpoint(self):
        assert delta_endpoint("AAMk1") == (
            "me/mailFolders/AAMk1/messages/delta"
        )


class TestFolderMap:
    """Tests for FolderMap.resolve() and its cache."""

    def test_singleton(self):
        assert FolderMap.get_instance() is FolderMap.get_instance()

    @pytest.mark.asyncio
    async def test_well_known_needs_no_request(self, graph_client, fake_graph):
        folder_map = FolderMap()

        assert await folder_map.resolve(graph_client, "Sent") == "sentitems"
        assert fake_graph.requests == []

    @pytest.mark.asyncio
    async def test_display_name_lookup(self, graph_client, fake_graph):
        fake_graph.queue(
            graph_page([{"id": "AAMk1", "displayName": "Projects"}])
        )
        folder_map = FolderMap()

        folder_id = await folder_map.resolve(graph_client, "Projects")

        assert folder_id == "AAMk1"
        assert fake_graph.requests[0].url.path.endswith("/me/mailFolders")
        assert fake_graph.params() == {
            "$filter": "displayName eq 'Projects'",
            "$select": "id,displayName,parentFolderId",
            "$top": "1",
        }

    @pytest.mark.asyncio
    async def test_lookup_is_cached(self, graph_client, fake_graph):
        fake_graph.queue(
            graph_page([{"id": "AAMk1", "displayName": "Projects"}])
        )
        folder_map = FolderMap()

        await folder_map.resolve(graph_client, "Projects")
        again = await folder_map.resolve(graph_client, "projects")

        assert again == "AAMk1"
        assert len(fake_graph.requests) == 1

    @pytest.mark.asyncio
    async def test_name_is_escaped(self, graph_client, fake_graph):
        fake_graph.queue(graph_page([{"id": "AAMk2"}]))

        await FolderMap().resolve(graph_client, "Bob's")

        assert fake_graph.params()["$filter"] == "displayName eq 'Bob''s'"

    @pytest.mark.asyncio
    async def test_unknown_falls_back_to_inbox(
        self, graph_client, fake_graph, caplog
    ):
        fake_graph.handler = lambda request: graph_page([])
        folder_map = FolderMap()

        assert await folder_map.resolve(graph_client, "Nowhere") == "inbox"
        assert "not found" in caplog.text

        # Misses are not cached
        await folder_map.resolve(graph_client, "Nowhere")
        assert len(fake_graph.requests) == 2

    def test_stale_entry_ignored(self):
        folder_map = FolderMap()
        folder_map._ids["projects"] = ("AAMk1", time.monotonic() - 301)

        assert folder_map.lookup("Projects") is None

    def test_fresh_entry(self):
        folder_map = FolderMap()
        folder_map.remember("Projects", "AAMk1")

        assert folder_map.lookup("PROJECTS") == "AAMk1"
