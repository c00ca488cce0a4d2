"""Caller-supplied filter and list option records.

Every filter dimension is an explicit optional field. Blank strings are
treated as unset so that tool callers can send empty form values.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from mail_query_agent.query.ordering import SortDirection, normalize_sort_direction


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class FolderQueryField(str, Enum):
    """Fields searchable by the free-text folder query."""

    SUBJECT = "subject"
    BODY = "body"
    FROM = "from"
    TO = "to"


class AdvancedSearchCriteria(BaseModel):
    """Multi-dimension filter combined with AND semantics."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    keyword: str | None = Field(default=None, description="Match any text in headers and body")
    sender: str | None = Field(default=None, description="Sender contains")
    receiver: str | None = Field(default=None, description="Receiver contains")
    subject: str | None = Field(default=None, description="Subject contains")
    body: str | None = Field(default=None, description="Body contains")
    cc: str | None = Field(default=None, description="CC contains")
    bcc: str | None = Field(default=None, description="BCC contains")

    date: str | None = Field(default=None, description="Received on date (ISO)")
    date_from: str | None = Field(default=None, description="Received since date/time (ISO)")
    date_to: str | None = Field(
        default=None, description="Received until date/time (ISO). Date-only is inclusive."
    )
    sent_date: str | None = Field(default=None, description="Sent on date (ISO)")
    sent_date_from: str | None = Field(default=None, description="Sent since date/time (ISO)")
    sent_date_to: str | None = Field(
        default=None, description="Sent until date/time (ISO). Date-only is inclusive."
    )

    seen: bool | None = Field(default=None, description="Only read messages")
    unseen: bool | None = Field(default=None, description="Only unread messages")
    message_id: str | None = Field(default=None, description="Message-ID header contains")

    @field_validator(
        "keyword",
        "sender",
        "receiver",
        "subject",
        "body",
        "cc",
        "bcc",
        "date",
        "date_from",
        "date_to",
        "sent_date",
        "sent_date_from",
        "sent_date_to",
        "message_id",
        mode="before",
    )
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _blank_to_none(v)

    def has_filter(self) -> bool:
        """Whether at least one dimension is set."""
        if self.seen is True or self.unseen is True:
            return True
        return any(
            value is not None
            for name, value in self
            if name not in ("seen", "unseen")
        )


class BasicSearchCriteria(BaseModel):
    """Simple folder search by a handful of fields."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_: str | None = Field(default=None, alias="from", description="Sender contains")
    to: str | None = Field(default=None, description="Recipient contains")
    subject: str | None = Field(default=None, description="Subject contains")
    body: str | None = Field(default=None, description="Body contains")
    since: str | None = Field(default=None, description="Date since (ISO)")
    before: str | None = Field(default=None, description="Date before (ISO)")
    unseen: bool = Field(default=False, description="Only unread")

    @field_validator("from_", "to", "subject", "body", "since", "before", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _blank_to_none(v)


class ListOptions(BaseModel):
    """Pagination, sort and snippet options shared by list-like operations."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    limit: int | float | None = Field(default=None, description="Requested page size")
    sort: SortDirection = Field(default=SortDirection.DESCENDING, description="Sort by UID")
    cursor: str | None = Field(default=None, description="Opaque cursor from a previous page")
    include_snippet: bool = Field(default=False, description="Include a plain-text snippet")

    @field_validator("sort", mode="before")
    @classmethod
    def _normalize_sort(cls, v: Any) -> SortDirection:
        return normalize_sort_direction(_blank_to_none(v))

    @field_validator("cursor", mode="before")
    @classmethod
    def _strip_cursor(cls, v: Any) -> str | None:
        return _blank_to_none(v)

    @field_validator("limit", mode="before")
    @classmethod
    def _lenient_limit(cls, v: Any) -> int | float | None:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return v
