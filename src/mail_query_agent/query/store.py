"""Narrow read-only store interface consumed by the query core."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from mail_query_agent.query.criteria import Predicate


@dataclass(frozen=True)
class ThreadHeaders:
    """Reference-bearing headers of one message."""

    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FetchedMessage:
    """Raw envelope record as returned by the store.

    ``envelope`` is the store's own envelope structure; ``source`` holds the
    raw RFC 822 bytes when they were requested.
    """

    uid: int
    envelope: Any = None
    source: bytes | None = None


class MailStore(Protocol):
    """Given a mailbox, answer UID searches and fetches. Must not mutate."""

    def search(self, mailbox: str, predicate: Predicate) -> set[int]: ...

    def fetch_headers(self, mailbox: str, uid: int) -> ThreadHeaders | None: ...

    def fetch_envelopes(
        self,
        mailbox: str,
        uids: Sequence[int],
        include_source: bool = False,
    ) -> list[FetchedMessage]: ...
