"""Store-agnostic query core.

Ordering helpers, cursor pagination, the search criteria compiler and the
thread-context resolver. Nothing here talks to IMAP directly; the store is
reached through :class:`~mail_query_agent.query.store.MailStore`.
"""

from .ordering import (
    SortDirection,
    clamp_limit,
    decode_cursor,
    encode_cursor,
    normalize_sort_direction,
)
from .pagination import Page, PaginationInput, paginate

__all__ = [
    "Page",
    "PaginationInput",
    "SortDirection",
    "clamp_limit",
    "decode_cursor",
    "encode_cursor",
    "normalize_sort_direction",
    "paginate",
]
