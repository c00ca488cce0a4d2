"""Thread context: one-hop expansion of a message via its reference headers.

The target's own Message-ID, its In-Reply-To and each References entry are
searched for one at a time. Every message whose Message-ID, References or
In-Reply-To header mentions one of those ids is part of the context. The
expansion does not recurse, so the number of store round-trips is one
header fetch plus one search per id.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from mail_query_agent.query.criteria import AnyOf, HeaderTerm, Predicate
from mail_query_agent.query.pagination import Page, PaginationInput, paginate
from mail_query_agent.query.store import MailStore, ThreadHeaders

logger = structlog.get_logger()

_ANGLE_ID_RE = re.compile(r"<[^<>]+>")


def normalize_message_id(value: str) -> str:
    """Canonical comparison key: trimmed, without surrounding angle brackets."""
    text = value.strip()
    if text.startswith("<"):
        text = text[1:]
    if text.endswith(">"):
        text = text[:-1]
    return text.strip()


def split_references(value: str | None) -> tuple[str, ...]:
    """Split a References header into its ids."""
    if not value:
        return ()
    found = _ANGLE_ID_RE.findall(value)
    if found:
        return tuple(found)
    return tuple(value.split())


def collect_reference_ids(headers: ThreadHeaders) -> list[str]:
    """Normalized ids to expand, in header order, without duplicates."""
    candidates: list[str] = []
    if headers.message_id:
        candidates.append(headers.message_id)
    if headers.in_reply_to:
        candidates.append(headers.in_reply_to)
    candidates.extend(headers.references)

    keys: dict[str, None] = {}
    for raw in candidates:
        key = normalize_message_id(str(raw))
        if key:
            keys.setdefault(key, None)
    return list(keys)


def thread_predicate(message_id: str) -> Predicate:
    """Messages whose Message-ID, References or In-Reply-To mention the id."""
    bracketed = f"<{message_id}>"
    return Predicate(
        (
            AnyOf(
                (
                    HeaderTerm("Message-ID", bracketed),
                    HeaderTerm("References", bracketed),
                    HeaderTerm("In-Reply-To", bracketed),
                )
            ),
        )
    )


@dataclass(frozen=True)
class ThreadContext:
    """Target UID plus every related UID (target included)."""

    target_uid: int
    related_uids: frozenset[int]

    def page(self, pagination: PaginationInput | None = None) -> Page:
        return paginate(self.related_uids, pagination)


class ThreadContextResolver:
    """Resolves the thread context of one message against a store."""

    def __init__(self, store: MailStore) -> None:
        self._store = store

    def resolve(self, mailbox: str, target_uid: int) -> ThreadContext | None:
        """Expand a message into its one-hop thread context.

        Searches run sequentially on the caller's store connection.

        Args:
            mailbox: Mailbox holding the target.
            target_uid: UID of the target message.

        Returns:
            ThreadContext, or None if the target does not exist.
        """
        headers = self._store.fetch_headers(mailbox, target_uid)
        if headers is None:
            logger.info("thread_target_not_found", mailbox=mailbox, uid=target_uid)
            return None

        reference_ids = collect_reference_ids(headers)
        related = {target_uid}
        for message_id in reference_ids:
            related.update(self._store.search(mailbox, thread_predicate(message_id)) or ())

        logger.info(
            "thread_context_resolved",
            mailbox=mailbox,
            uid=target_uid,
            reference_count=len(reference_ids),
            related_count=len(related),
        )
        return ThreadContext(target_uid=target_uid, related_uids=frozenset(related))
