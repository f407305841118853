"""Progressive search over Microsoft Graph.

Provides:
- progressive_search(): Build candidates for a QueryCriteria and run them
- run_strategies(): The fallback loop over an explicit Strategy list

Strategies run strictly in order through the paginator. The first one
that returns at least one item wins and nothing after it is tried. A
rejected or failed candidate counts as empty. When every candidate comes
back empty, the final recent-emails fallback runs and its result is
returned as-is; only that last request may raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .builders import QueryCriteria, Strategy, build_candidates
from .config import get_max_page_size
from .executor import GraphAuthError, GraphError
from .pagination import Page, paginate

if TYPE_CHECKING:
    from .executor import GraphClient

logger = logging.getLogger(__name__)


class SearchOutcome(str, Enum):
    """How a search ended."""

    SUCCEEDED = "succeeded"
    EXHAUSTED_FALLBACK = "exhausted_fallback"


@dataclass
class StrategyAttempt:
    """One strategy tried, with its item count or error."""

    strategy: str
    count: int = 0
    error: str | None = None


@dataclass
class SearchResult:
    """Final page plus the provenance of every attempt."""

    outcome: SearchOutcome
    strategy: str
    page: Page
    attempts: list[StrategyAttempt] = field(default_factory=list)

    @property
    def items(self) -> list[dict]:
        return self.page.items

    @property
    def strategy_index(self) -> int:
        return len(self.attempts) - 1


async def run_strategies(
    client: GraphClient,
    endpoint: str,
    strategies: list[Strategy],
    max_count: int,
) -> SearchResult:
    """
    Run candidates in order; fall back to the last one if all come back empty.

    Args:
        client: Graph transport
        endpoint: Collection to search (folder messages or me/messages)
        strategies: Ordered candidates; the last is the fallback
        max_count: Result cap handed to the paginator

    Returns:
        SearchResult with outcome SUCCEEDED or EXHAUSTED_FALLBACK

    Raises:
        GraphAuthError: From any strategy
        GraphError: Only from the final fallback
    """
    *candidates, fallback = strategies
    attempts: list[StrategyAttempt] = []

    for strategy in candidates:
        try:
            page = await paginate(client, endpoint, strategy.shape, max_count)
        except GraphAuthError:
            raise
        except GraphError as e:
            logger.info("Search strategy %s failed: %s", strategy.name, e)
            attempts.append(StrategyAttempt(strategy.name, error=str(e)))
            continue

        attempts.append(StrategyAttempt(strategy.name, count=len(page.items)))
        if page.items:
            logger.info(
                "Search strategy %s found %d result(s)",
                strategy.name,
                len(page.items),
            )
            return SearchResult(
                SearchOutcome.SUCCEEDED, strategy.name, page, attempts
            )
        logger.debug("Search strategy %s found nothing", strategy.name)

    logger.info(
        "No search strategy matched after %d attempt(s), using %s",
        len(attempts),
        fallback.name,
    )
    page = await paginate(client, endpoint, fallback.shape, max_count)
    attempts.append(StrategyAttempt(fallback.name, count=len(page.items)))
    return SearchResult(
        SearchOutcome.EXHAUSTED_FALLBACK, fallback.name, page, attempts
    )


async def progressive_search(
    client: GraphClient,
    endpoint: str,
    criteria: QueryCriteria,
    max_count: int,
    preset: str = "list",
) -> SearchResult:
    """
    Search with progressively simpler request shapes.

    Args:
        client: Graph transport
        endpoint: Collection to search
        criteria: Search intent
        max_count: Maximum results to return (0 = unbounded)
        preset: Field projection preset

    Returns:
        SearchResult; see run_strategies()

    Example:
        >>> result = await progressive_search(
        ...     client, "me/messages", QueryCriteria(sender="boss@co.com"), 5
        ... )
        >>> result.strategy
        'single-term-sender'
    """
    max_page = get_max_page_size()
    page_size = min(max_page, max_count) if max_count > 0 else max_page
    strategies = build_candidates(criteria, page_size, preset)
    logger.debug(
        "Search candidates: %s", ", ".join(s.name for s in strategies)
    )
    return await run_strategies(client, endpoint, strategies, max_count)
