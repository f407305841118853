"""Folder name → Graph folder id resolution.

Graph addresses the standard folders by well-known names (``inbox``,
``sentitems``, ...). Any other folder needs its id, which we look up by
display name once and cache.

Usage:
    folder_map = FolderMap.get_instance()
    folder_id = await folder_map.resolve(client, "Projects")
    endpoint = messages_endpoint(folder_id)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING

from .builders import escape_odata_string
from .fields import folder_fields_for

if TYPE_CHECKING:
    from .executor import GraphClient

logger = logging.getLogger(__name__)

# Cache TTL in seconds (5 minutes)
_CACHE_TTL = 300

ALL_MESSAGES_ENDPOINT = "me/messages"

WELL_KNOWN_FOLDERS = {
    "inbox",
    "drafts",
    "sentitems",
    "deleteditems",
    "archive",
    "junkemail",
    "outbox",
}

FOLDER_ALIASES = {
    "sent": "sentitems",
    "sent items": "sentitems",
    "deleted": "deleteditems",
    "deleted items": "deleteditems",
    "trash": "deleteditems",
    "junk": "junkemail",
    "junk email": "junkemail",
    "spam": "junkemail",
}


def messages_endpoint(folder_id: str) -> str:
    return f"me/mailFolders/{folder_id}/messages"


def delta_endpoint(folder_id: str) -> str:
    return f"me/mailFolders/{folder_id}/messages/delta"


def well_known_name(folder: str) -> str | None:
    """Map a folder name or alias to its Graph well-known name, if any."""
    key = folder.strip().lower()
    if key in WELL_KNOWN_FOLDERS:
        return key
    return FOLDER_ALIASES.get(key)


class FolderMap:
    """Thread-safe, cached mapping from folder display names to ids."""

    _instance: FolderMap | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._ids: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._async_lock = asyncio.Lock()

    @classmethod
    def get_instance(cls) -> FolderMap:
        """Get the singleton FolderMap instance (thread-safe)."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = FolderMap()
            return cls._instance

    def lookup(self, name: str) -> str | None:
        """Return the cached id for a display name, or None if absent/stale."""
        with self._lock:
            entry = self._ids.get(name.strip().lower())
        if entry is None:
            return None
        folder_id, loaded_at = entry
        if time.monotonic() - loaded_at > _CACHE_TTL:
            return None
        return folder_id

    def remember(self, name: str, folder_id: str) -> None:
        with self._lock:
            self._ids[name.strip().lower()] = (folder_id, time.monotonic())

    async def resolve(self, client: GraphClient, folder: str) -> str:
        """
        Resolve a folder name to something usable in a Graph path.

        Well-known names and aliases resolve locally. Other names are
        looked up by displayName; a name that matches nothing resolves
        to ``inbox`` with a warning.

        Args:
            client: Graph transport
            folder: Folder name as the user typed it

        Returns:
            Well-known folder name or folder id
        """
        known = well_known_name(folder)
        if known:
            return known

        cached = self.lookup(folder)
        if cached:
            return cached

        async with self._async_lock:
            # Another coroutine may have resolved it while we waited
            cached = self.lookup(folder)
            if cached:
                return cached

            response = await client.request(
                "GET",
                "me/mailFolders",
                params={
                    "$filter": (
                        f"displayName eq '{escape_odata_string(folder)}'"
                    ),
                    "$select": ",".join(folder_fields_for("basic")),
                    "$top": "1",
                },
            )
            matches = response.get("value") or []
            if not matches:
                logger.warning("Folder %r not found, using inbox", folder)
                return "inbox"

            folder_id = matches[0]["id"]
            self.remember(folder, folder_id)
            logger.debug("Resolved folder %r to %s", folder, folder_id)
            return folder_id
