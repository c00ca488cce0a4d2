"""Cursor pagination over unordered UID match sets."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mail_query_agent.query.ordering import (
    DEFAULT_CEILING,
    DEFAULT_LIMIT,
    CursorCodec,
    SortDirection,
    clamp_limit,
    decode_cursor,
    encode_cursor,
    normalize_sort_direction,
)


@dataclass(frozen=True)
class PaginationInput:
    """Caller pagination request for one page."""

    cursor: str | None = None
    limit: int | float | None = None
    ceiling: int = DEFAULT_CEILING
    sort: SortDirection | str = SortDirection.DESCENDING
    default_limit: int = DEFAULT_LIMIT

    @property
    def effective_limit(self) -> int:
        return clamp_limit(self.limit, self.ceiling, self.default_limit)


@dataclass(frozen=True)
class Page:
    """One page of UIDs plus the cursor for the next page, if any."""

    items: tuple[int, ...]
    next_cursor: str | None
    sort: SortDirection
    limit: int


def paginate(
    matched: Iterable[int],
    pagination: PaginationInput | None = None,
    codec: CursorCodec | None = None,
) -> Page:
    """Slice a match set into a stable, resumable page.

    The match set is deduplicated, stripped of non-positive values and
    sorted ascending; descending order is the reverse of that. A cursor
    boundary is a threshold: UIDs strictly past it in the current direction
    are kept, whether or not the boundary itself is still in the set.

    Args:
        matched: UIDs returned by the store, in any order.
        pagination: Cursor, limit, ceiling and sort direction.
        codec: Cursor codec. Defaults to the module codec.

    Returns:
        Page with at most ``effective_limit`` items. ``next_cursor`` is set
        only when more items remain past the page.

    Raises:
        InvalidCursorError: If the cursor is malformed.
    """
    pagination = pagination or PaginationInput()
    sort = normalize_sort_direction(pagination.sort)
    limit = pagination.effective_limit
    boundary = decode_cursor(pagination.cursor, codec)

    ordered = sorted({uid for uid in matched if uid > 0})
    if sort is SortDirection.DESCENDING:
        ordered.reverse()

    if boundary is not None:
        if sort is SortDirection.ASCENDING:
            ordered = [uid for uid in ordered if uid > boundary]
        else:
            ordered = [uid for uid in ordered if uid < boundary]

    items = tuple(ordered[:limit])
    next_cursor = None
    if len(ordered) > len(items) and items:
        next_cursor = encode_cursor(items[-1], codec)

    return Page(items=items, next_cursor=next_cursor, sort=sort, limit=limit)
