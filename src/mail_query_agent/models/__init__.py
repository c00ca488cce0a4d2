"""Data models for Mail Query Agent.

This module contains Pydantic models for data validation and serialization.
Output models serialize with camelCase keys, which is the shape tool
callers see.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mail_query_agent.models.criteria import (
    AdvancedSearchCriteria,
    BasicSearchCriteria,
    FolderQueryField,
    ListOptions,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class MessageEnvelope(_WireModel):
    """Lightweight, body-less summary of one message."""

    uid: int = Field(description="Message UID within the mailbox")
    subject: str = Field(default="", description="Decoded Subject header")
    from_: str = Field(default="", alias="from", description="Comma-joined sender addresses")
    to: str = Field(default="", description="Comma-joined recipient addresses")
    date: str = Field(default="", description="ISO-8601 envelope date in UTC")
    message_id: Optional[str] = Field(default=None, description="Message-ID header")
    snippet: Optional[str] = Field(default=None, description="Plain-text body snippet")


class MessageContent(_WireModel):
    """Envelope plus plain-text body of one message."""

    envelope: MessageEnvelope
    body_text: str = Field(description="Plain-text body (or converted HTML), truncated per config")


class EnvelopePage(_WireModel):
    """One page of envelopes."""

    items: list[MessageEnvelope] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, description="Cursor for the next page")


class ThreadContextResult(_WireModel):
    """One page of messages related to a target message."""

    target_uid: int
    items: list[MessageEnvelope] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class MailboxInfo(_WireModel):
    """A folder as reported by LIST, with optional counters."""

    path: str
    name: str
    messages: Optional[int] = None
    unseen: Optional[int] = None


class MailboxStatus(_WireModel):
    """STATUS counters for one folder."""

    path: str
    messages: int = 0
    unseen: int = 0
    recent: int = 0
    uid_next: Optional[int] = None
    uid_validity: Optional[str] = None
    highest_modseq: Optional[str] = None


class AttachmentInfo(_WireModel):
    """Attachment metadata (no content)."""

    filename: str = ""
    content_type: str = "application/octet-stream"
    content_disposition: str = "attachment"
    size: int = 0
    checksum: str = ""
    content_id: Optional[str] = None
    cid: Optional[str] = None
    related: bool = False


__all__ = [
    "AdvancedSearchCriteria",
    "AttachmentInfo",
    "BasicSearchCriteria",
    "EnvelopePage",
    "FolderQueryField",
    "ListOptions",
    "MailboxInfo",
    "MailboxStatus",
    "MessageContent",
    "MessageEnvelope",
    "ThreadContextResult",
]
