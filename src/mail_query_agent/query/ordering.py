"""UID ordering helpers: sort direction, limit clamping and cursor codec.

Cursors are opaque to callers. They encode the last UID emitted on the
previous page and nothing else; how that boundary is compared against the
next match set is decided by the pagination engine, not by the codec.
"""

from __future__ import annotations

import base64
import binascii
import math
from enum import Enum
from typing import Any, Protocol

from mail_query_agent.exceptions import InvalidCursorError

DEFAULT_LIMIT = 50
DEFAULT_CEILING = 200


class SortDirection(str, Enum):
    """Sort direction by UID."""

    ASCENDING = "asc"
    DESCENDING = "desc"


def normalize_sort_direction(value: Any) -> SortDirection:
    """Return ascending only for an explicit ascending token; otherwise descending."""
    if value is SortDirection.ASCENDING or value == SortDirection.ASCENDING.value:
        return SortDirection.ASCENDING
    return SortDirection.DESCENDING


def _finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp_limit(requested: Any, ceiling: Any, default: Any = DEFAULT_LIMIT) -> int:
    """Clamp a requested page size into ``[1, ceiling]``.

    Args:
        requested: Caller supplied limit. Anything that is not a finite
            number (including None and booleans) falls back to ``default``.
        ceiling: Configured hard cap. Invalid values fall back to 200.
        default: Operation default. Invalid values fall back to 50.

    Returns:
        Effective limit. Fractional input is floored.
    """
    fallback = max(1, math.floor(default)) if _finite_number(default) else DEFAULT_LIMIT
    cap = max(1, math.floor(ceiling)) if _finite_number(ceiling) else DEFAULT_CEILING
    normalized = max(1, math.floor(requested)) if _finite_number(requested) else fallback
    return min(normalized, cap)


class CursorCodec(Protocol):
    """Encodes a boundary UID as an opaque string and back."""

    def encode(self, uid: int) -> str: ...

    def decode(self, cursor: str) -> int: ...


class Base64CursorCodec:
    """Unpadded URL-safe base64 of the decimal UID."""

    def encode(self, uid: int) -> str:
        raw = base64.urlsafe_b64encode(str(int(uid)).encode("utf-8"))
        return raw.decode("ascii").rstrip("=")

    def decode(self, cursor: str) -> int:
        token = cursor.strip()
        padded = token + "=" * (-len(token) % 4)
        try:
            decoded = base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8").strip()
        except (binascii.Error, ValueError) as exc:
            raise InvalidCursorError() from exc

        if not decoded.isascii() or not decoded.isdigit():
            raise InvalidCursorError()
        uid = int(decoded)
        if uid <= 0:
            raise InvalidCursorError()
        return uid


DEFAULT_CODEC: CursorCodec = Base64CursorCodec()


def encode_cursor(uid: int, codec: CursorCodec | None = None) -> str:
    """Encode a boundary UID as an opaque cursor."""
    return (codec or DEFAULT_CODEC).encode(uid)


def decode_cursor(cursor: str | None, codec: CursorCodec | None = None) -> int | None:
    """Decode a cursor into its boundary UID.

    Returns:
        The boundary UID, or None when no cursor was given.

    Raises:
        InvalidCursorError: If the cursor does not decode to a positive integer.
    """
    if cursor is None:
        return None
    if not isinstance(cursor, str):
        raise InvalidCursorError()
    if not cursor.strip():
        return None
    return (codec or DEFAULT_CODEC).decode(cursor)
