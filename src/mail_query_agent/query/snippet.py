"""Plain-text snippet and body truncation helpers."""

import re

_WHITESPACE_RE = re.compile(r"\s+")

TRUNCATION_MARKER = "\n[... truncated]"


def to_snippet(text: str, max_length: int) -> str:
    """Collapse whitespace and cut to ``max_length`` characters plus an ellipsis."""
    normalized = _WHITESPACE_RE.sub(" ", text).strip()
    if max_length <= 0 or len(normalized) <= max_length:
        return normalized
    return normalized[:max_length] + "..."


def truncate_body(text: str, max_length: int) -> str:
    """Cut body text to ``max_length`` characters (0 means no limit)."""
    if max_length > 0 and len(text) > max_length:
        return text[:max_length] + TRUNCATION_MARKER
    return text
