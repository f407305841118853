"""Delta sync for a mail folder.

A sync has two phases. Without a token, sync_page() fetches the folder's
delta collection from scratch (the baseline). Every response carries either
an ``@odata.nextLink`` (more pages of the same pass) or an
``@odata.deltaLink`` (pass complete). Both are stored in the caller-held
SyncState as the new token the moment they arrive, so the next call
continues exactly where this one stopped.

An expired token is reported as SyncOutcome.RESYNC_REQUIRED. Discarding
state and starting over is left to the caller.

SyncState is single-writer: never run two sync_page() calls against the
same state at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .builders import RequestShape
from .config import get_delta_max_page_size, get_delta_max_pages
from .executor import GraphAuthError, GraphError, GraphResyncRequiredError
from .fields import fields_for
from .folders import delta_endpoint
from .pagination import Cursor, FreshShape, NextRequest, fetch

if TYPE_CHECKING:
    from .executor import GraphClient

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    # Graph does not tell created and updated apart
    CREATED_OR_UPDATED = "created_or_updated"
    REMOVED = "removed"


class SyncType(str, Enum):
    INITIAL = "initial"
    INCREMENTAL = "incremental"


class SyncOutcome(str, Enum):
    """How a sync_page() call ended."""

    COMPLETE = "complete"
    PENDING = "pending"
    RESYNC_REQUIRED = "resync_required"


@dataclass
class SyncState:
    """Caller-held sync position for one folder."""

    folder: str = "inbox"
    token: str | None = None
    complete: bool = False

    @property
    def sync_type(self) -> SyncType:
        return SyncType.INCREMENTAL if self.token else SyncType.INITIAL

    def reset(self) -> None:
        """Forget the token so the next call starts a new baseline."""
        self.token = None
        self.complete = False


@dataclass(frozen=True)
class ChangeRecord:
    """One item from a delta page."""

    id: str
    kind: ChangeKind
    item: dict[str, Any]
    reason: str | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> ChangeRecord:
        removed = item.get("@removed")
        if removed is not None:
            reason = None
            if isinstance(removed, dict):
                reason = removed.get("reason")
            return cls(
                id=item.get("id", ""),
                kind=ChangeKind.REMOVED,
                item=item,
                reason=reason or "deleted",
            )
        return cls(
            id=item.get("id", ""),
            kind=ChangeKind.CREATED_OR_UPDATED,
            item=item,
        )


@dataclass
class SyncResult:
    """Changes gathered by one sync_page() call."""

    outcome: SyncOutcome
    sync_type: SyncType
    state: SyncState
    changes: list[ChangeRecord] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False
    error: str | None = None

    @property
    def created_or_updated(self) -> int:
        return sum(
            1 for c in self.changes if c.kind is ChangeKind.CREATED_OR_UPDATED
        )

    @property
    def removed(self) -> int:
        return sum(1 for c in self.changes if c.kind is ChangeKind.REMOVED)

    @property
    def has_more(self) -> bool:
        return self.outcome is SyncOutcome.PENDING


def _stop_early(result: SyncResult, error: GraphError) -> SyncResult:
    """End a pass after a failed follow-up page, keeping what was read."""
    logger.warning(
        "Delta sync for %s stopped after %d page(s): %s",
        result.state.folder,
        result.pages,
        error,
    )
    result.truncated = True
    result.error = str(error)
    return result


async def sync_page(
    client: GraphClient,
    state: SyncState,
    max_per_page: int = 100,
    *,
    endpoint: str | None = None,
    max_pages: int | None = None,
) -> SyncResult:
    """
    Run one delta sync call against ``state``.

    Follows nextLinks until a deltaLink arrives or ``max_pages`` pages
    have been read. ``state.token`` is replaced after every page.

    Args:
        client: Graph transport
        state: Caller-held sync position (mutated in place)
        max_per_page: Page-size hint for the initial request, capped by
            OUTLOOK_MCP_DELTA_MAX_PAGE_SIZE
        endpoint: Delta collection path (default: state.folder's delta
            endpoint). Only used when there is no token.
        max_pages: Page budget for this call (default from config)

    Returns:
        SyncResult with outcome COMPLETE, PENDING or RESYNC_REQUIRED

    Raises:
        GraphAuthError: Missing or rejected access token
        GraphError: The first page failed or carried neither nextLink
            nor deltaLink. A failure on a later page returns PENDING with
            ``truncated`` set and the changes gathered so far.
    """
    sync_type = state.sync_type
    if max_pages is None:
        max_pages = get_delta_max_pages()

    request: NextRequest
    if state.token:
        request = Cursor(state.token)
    else:
        page_size = max(1, min(max_per_page, get_delta_max_page_size()))
        request = FreshShape(
            endpoint or delta_endpoint(state.folder),
            RequestShape(select=fields_for("delta"), top=page_size),
        )
        state.complete = False

    result = SyncResult(SyncOutcome.PENDING, sync_type, state)

    while True:
        try:
            response = await fetch(client, request)
        except GraphResyncRequiredError as e:
            logger.warning(
                "Delta token for %s expired, resync required", state.folder
            )
            result.outcome = SyncOutcome.RESYNC_REQUIRED
            result.error = str(e)
            return result
        except GraphAuthError:
            raise
        except GraphError as e:
            # state.token already points past the pages gathered here
            if result.pages == 0:
                raise
            return _stop_early(result, e)

        result.pages += 1
        result.changes.extend(
            ChangeRecord.from_item(item) for item in response.get("value") or []
        )

        delta_link = response.get("@odata.deltaLink")
        next_link = response.get("@odata.nextLink")

        if delta_link:
            state.token = delta_link
            state.complete = True
            result.outcome = SyncOutcome.COMPLETE
            break
        if not next_link:
            error = GraphError(
                "Delta response carried neither nextLink nor deltaLink"
            )
            if result.pages == 1:
                raise error
            # The token stays on this page, so its items are served again
            return _stop_early(result, error)

        state.token = next_link
        if 0 < max_pages <= result.pages:
            logger.info(
                "Delta sync for %s paused after %d page(s)",
                state.folder,
                result.pages,
            )
            break
        request = Cursor(next_link)

    logger.info(
        "Delta sync (%s) for %s: %d change(s), %s",
        sync_type.value,
        state.folder,
        len(result.changes),
        result.outcome.value,
    )
    return result
