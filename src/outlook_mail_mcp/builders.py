"""
Request builders for Microsoft Graph message searches.

QueryCriteria holds what the caller asked for. build_candidates() turns it
into an ordered list of Strategy descriptors, each wrapping one RequestShape
that Graph is known to accept on its own, most specific first.

Graph limitations encoded here:
- $filter on an email address cannot be combined with $orderby
- $search and some $filter predicates reject each other, so simpler
  shapes follow the combined one
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .fields import fields_for

logger = logging.getLogger(__name__)

ORDER_BY_RECENT = "receivedDateTime desc"
ORDER_BY_OLDEST = "receivedDateTime asc"

# Strategy names, in the order candidates are built
RAW_KQL = "raw-kql"
COMBINED_SEARCH = "combined-search"
SINGLE_TERM_SENDER = "single-term-sender"
SINGLE_TERM_RECIPIENT = "single-term-recipient"
SINGLE_TERM_SUBJECT = "single-term-subject"
SINGLE_TERM_QUERY = "single-term-query"
BOOLEAN_FILTERS_ONLY = "boolean-filters-only"
RECENT_EMAILS = "recent-emails"

# Every address predicate goes through emailAddress
_ADDRESS_MARKER = "emailAddress"


# ========== OData Helpers ==========


def escape_odata_string(value: str) -> str:
    """Escape a literal for use inside single quotes in an OData query."""
    return value.replace("'", "''")


def build_odata_filter(conditions: list[str]) -> str:
    """Join filter conditions with ``and`` (empty string for none)."""
    return " and ".join(conditions)


def quote_search(expression: str) -> str:
    """Wrap a KQL expression in double quotes for ``$search``.

    Inner backslashes and double quotes are backslash-escaped.

    Example:
        >>> quote_search('budget subject:"Q3"')
        '"budget subject:\\\\"Q3\\\\""'
    """
    escaped = expression.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_odata_datetime(value: str | datetime) -> str | None:
    """
    Normalize a caller-supplied date to an OData UTC timestamp.

    Accepts ISO 8601 strings (``2024-01-15``, ``2024-01-15T10:30:00Z``,
    offsets) or datetime objects. Naive values are taken as UTC.

    Returns:
        ``YYYY-MM-DDTHH:MM:SSZ``, or None when the value cannot be
        parsed (logged, never raised)
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Ignoring malformed date %r", value)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        parsed = parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # Offsets at the ends of the calendar fall outside it in UTC
        logger.warning("Ignoring out-of-range date %r", value)
        return None
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")


def sender_predicate(value: str) -> str:
    """Exact address match when the value contains '@', else name search."""
    safe = escape_odata_string(value)
    if "@" in value:
        return f"from/emailAddress/address eq '{safe}'"
    return f"contains(from/emailAddress/name, '{safe}')"


def recipient_predicate(value: str) -> str:
    """Same rule as sender_predicate(), across all To recipients."""
    safe = escape_odata_string(value)
    if "@" in value:
        return f"toRecipients/any(r: r/emailAddress/address eq '{safe}')"
    return f"toRecipients/any(r: contains(r/emailAddress/name, '{safe}'))"


# ========== Data Model ==========


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class QueryCriteria:
    """
    Normalized search intent.

    Blank strings are stored as None so that "not given" has a single
    spelling. ``raw_query`` bypasses every other field when present.
    """

    free_text: str | None = None
    raw_query: str | None = None
    sender: str | None = None
    recipient: str | None = None
    subject: str | None = None
    has_attachments: bool | None = None
    unread_only: bool | None = None
    received_after: str | datetime | None = None
    received_before: str | datetime | None = None
    search_all_folders: bool = False
    folder: str = "inbox"

    def __post_init__(self) -> None:
        for name in (
            "free_text", "raw_query", "sender", "recipient", "subject"
        ):
            object.__setattr__(self, name, _clean(getattr(self, name)))
        for name in ("received_after", "received_before"):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, _clean(value))

    @property
    def has_boolean_filters(self) -> bool:
        return self.has_attachments is True or self.unread_only is True


@dataclass(frozen=True)
class RequestShape:
    """
    One internally consistent set of Graph query parameters.

    ``search`` holds the bare KQL expression; quoting happens in
    to_params(). A shape with an address predicate in ``filter`` may not
    carry ``orderby``.
    """

    select: tuple[str, ...] = field(default_factory=tuple)
    top: int = 50
    search: str | None = None
    filter: str | None = None
    orderby: str | None = None

    def __post_init__(self) -> None:
        if self.orderby and self.has_address_filter:
            raise ValueError(
                "An address $filter cannot be combined with $orderby"
            )

    @property
    def has_address_filter(self) -> bool:
        return bool(self.filter) and _ADDRESS_MARKER in self.filter

    def to_params(self) -> dict[str, str]:
        """Render as Graph query parameters."""
        params = {"$top": str(self.top)}
        if self.select:
            params["$select"] = ",".join(self.select)
        if self.search:
            params["$search"] = quote_search(self.search)
        if self.filter:
            params["$filter"] = self.filter
        if self.orderby:
            params["$orderby"] = self.orderby
        return params


@dataclass(frozen=True)
class Strategy:
    """A named candidate request shape."""

    name: str
    shape: RequestShape


# ========== Candidate Building ==========


def _flag_predicates(criteria: QueryCriteria) -> list[str]:
    """Boolean and date-range predicates; all are $orderby-compatible."""
    conditions = []
    if criteria.has_attachments is True:
        conditions.append("hasAttachments eq true")
    if criteria.unread_only is True:
        conditions.append("isRead eq false")
    if criteria.received_after:
        after = format_odata_datetime(criteria.received_after)
        if after:
            conditions.append(f"receivedDateTime ge {after}")
    if criteria.received_before:
        before = format_odata_datetime(criteria.received_before)
        if before:
            conditions.append(f"receivedDateTime le {before}")
    return conditions


def _subject_term(subject: str) -> str:
    return f'subject:"{subject}"'


def build_candidates(
    criteria: QueryCriteria, page_size: int, preset: str = "list"
) -> list[Strategy]:
    """
    Build the ordered candidate list for a search.

    Order:
        1. raw-kql (only when raw_query is set)
        2. combined-search: text + subject via $search, everything else
           via $filter
        3. single-term-{sender,recipient,subject,query} for each populated
           field, with the boolean/date predicates layered on
        4. boolean-filters-only (only when has_attachments/unread_only)
        5. recent-emails: no search, no filter, newest first

    $orderby is left off every shape that filters on an address. When two
    candidates come out identical (e.g. the combined shape for a single
    populated field) only the later, more descriptive one is kept. The
    last entry is always recent-emails.

    Args:
        criteria: Search intent
        page_size: $top for every shape
        preset: Field projection preset for $select

    Returns:
        List of Strategy, deterministic for equal inputs
    """
    select = fields_for(preset)
    flags = _flag_predicates(criteria)

    def shape(
        search: str | None = None,
        conditions: list[str] | None = None,
        sort: bool = True,
    ) -> RequestShape:
        return RequestShape(
            select=select,
            top=page_size,
            search=search,
            filter=build_odata_filter(conditions or []) or None,
            orderby=ORDER_BY_RECENT if sort else None,
        )

    candidates: list[Strategy] = []

    if criteria.raw_query:
        candidates.append(
            Strategy(RAW_KQL, shape(search=criteria.raw_query, sort=False))
        )

    # Combined: everything at once
    terms = []
    if criteria.free_text:
        terms.append(criteria.free_text)
    if criteria.subject:
        terms.append(_subject_term(criteria.subject))
    address = []
    if criteria.sender:
        address.append(sender_predicate(criteria.sender))
    if criteria.recipient:
        address.append(recipient_predicate(criteria.recipient))
    candidates.append(
        Strategy(
            COMBINED_SEARCH,
            shape(
                search=" ".join(terms) or None,
                conditions=address + flags,
                sort=not address,
            ),
        )
    )

    # One term at a time: $filter for addresses, $search for text
    if criteria.sender:
        candidates.append(
            Strategy(
                SINGLE_TERM_SENDER,
                shape(
                    conditions=[sender_predicate(criteria.sender)] + flags,
                    sort=False,
                ),
            )
        )
    if criteria.recipient:
        candidates.append(
            Strategy(
                SINGLE_TERM_RECIPIENT,
                shape(
                    conditions=[recipient_predicate(criteria.recipient)]
                    + flags,
                    sort=False,
                ),
            )
        )
    if criteria.subject:
        candidates.append(
            Strategy(
                SINGLE_TERM_SUBJECT,
                shape(search=_subject_term(criteria.subject), conditions=flags),
            )
        )
    if criteria.free_text:
        candidates.append(
            Strategy(
                SINGLE_TERM_QUERY,
                shape(search=criteria.free_text, conditions=flags),
            )
        )

    if criteria.has_boolean_filters:
        candidates.append(
            Strategy(BOOLEAN_FILTERS_ONLY, shape(conditions=flags))
        )

    candidates.append(Strategy(RECENT_EMAILS, shape()))

    return _collapse_duplicates(candidates)


def _collapse_duplicates(candidates: list[Strategy]) -> list[Strategy]:
    """Drop candidates whose shape reappears later in the list."""
    kept = []
    for i, strategy in enumerate(candidates):
        later = candidates[i + 1 :]
        if any(other.shape == strategy.shape for other in later):
            logger.debug(
                "Skipping %s: same request as a later strategy", strategy.name
            )
            continue
        kept.append(strategy)
    return kept
