"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Iterator

import pytest
import structlog
from imapclient.response_types import Address, Envelope

from mail_query_agent.exceptions import MailStoreConnectionError
from mail_query_agent.models import AttachmentInfo, MailboxInfo, MailboxStatus
from mail_query_agent.query.criteria import (
    AnyOf,
    DateOp,
    DateTerm,
    FlagTerm,
    HeaderTerm,
    Predicate,
    TextTerm,
    UidRangeTerm,
)
from mail_query_agent.query.store import FetchedMessage, ThreadHeaders


def _address(value: str) -> tuple[Address, ...]:
    mailbox, _, host = value.partition("@")
    return (Address(None, None, mailbox.encode(), host.encode()),)


def build_source(
    subject: str = "Hello",
    body: str = "Hello there",
    *,
    sender: str = "alice@example.com",
    to: str = "bob@example.com",
    html: str | None = None,
    attachments: tuple[tuple[str, str, bytes], ...] = (),
) -> bytes:
    """Raw RFC 822 bytes with an optional HTML alternative and attachments."""
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = to
    if body:
        message.set_content(body)
        if html is not None:
            message.add_alternative(html, subtype="html")
    elif html is not None:
        message.set_content(html, subtype="html")
    for filename, content_type, payload in attachments:
        maintype, subtype = content_type.split("/", 1)
        message.add_attachment(payload, maintype=maintype, subtype=subtype, filename=filename)
    return message.as_bytes()


@dataclass
class FakeMessage:
    """One message held by the in-memory store."""

    uid: int
    subject: str = "Hello"
    sender: str = "alice@example.com"
    to: str = "bob@example.com"
    body: str = "Hello there"
    seen: bool = False
    date: datetime = field(default_factory=lambda: datetime(2026, 2, 20, 9, 30, tzinfo=timezone.utc))
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = ()
    attachments: tuple[tuple[str, str, bytes], ...] = ()

    def envelope(self) -> Envelope:
        return Envelope(
            self.date,
            self.subject.encode(),
            _address(self.sender),
            _address(self.sender),
            None,
            _address(self.to),
            None,
            None,
            self.in_reply_to.encode() if self.in_reply_to else None,
            self.message_id.encode() if self.message_id else None,
        )

    def source(self) -> bytes:
        return build_source(
            self.subject,
            self.body,
            sender=self.sender,
            to=self.to,
            attachments=self.attachments,
        )

    def header(self, name: str) -> str:
        if name.lower() == "message-id":
            return self.message_id or ""
        if name.lower() == "in-reply-to":
            return self.in_reply_to or ""
        if name.lower() == "references":
            return " ".join(self.references)
        return ""


class FakeStore:
    """In-memory mailbox session that evaluates predicates itself."""

    def __init__(self, messages: list[FakeMessage] | None = None, mailbox: str = "INBOX") -> None:
        self.mailbox = mailbox
        self.messages = {message.uid: message for message in messages or []}
        self.searches: list[Predicate] = []
        self.fetched: list[list[int]] = []
        self.header_fetches: list[int] = []

    def _text(self, message: FakeMessage, name: str) -> str:
        values = {
            "text": " ".join((message.subject, message.body, message.sender, message.to)),
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "body": message.body,
        }
        return values.get(name, "")

    def _matches(self, message: FakeMessage, term: Any) -> bool:
        if isinstance(term, TextTerm):
            return term.value.lower() in self._text(message, term.field).lower()
        if isinstance(term, FlagTerm):
            return message.seen is term.seen
        if isinstance(term, DateTerm):
            if term.op is DateOp.SINCE:
                return message.date >= term.value
            return message.date < term.value
        if isinstance(term, HeaderTerm):
            return term.value in message.header(term.name)
        if isinstance(term, UidRangeTerm):
            return term.low <= message.uid and (term.high is None or message.uid <= term.high)
        if isinstance(term, AnyOf):
            return any(self._matches(message, inner) for inner in term.terms)
        raise TypeError(term)

    def search(self, mailbox: str, predicate: Predicate) -> set[int]:
        self.searches.append(predicate)
        if mailbox != self.mailbox:
            return set()
        return {
            uid
            for uid, message in self.messages.items()
            if all(self._matches(message, term) for term in predicate.terms)
        }

    def fetch_headers(self, mailbox: str, uid: int) -> ThreadHeaders | None:
        self.header_fetches.append(uid)
        message = self.messages.get(uid) if mailbox == self.mailbox else None
        if message is None:
            return None
        return ThreadHeaders(
            message_id=message.message_id,
            in_reply_to=message.in_reply_to,
            references=message.references,
        )

    def fetch_envelopes(self, mailbox: str, uids: Any, include_source: bool = False) -> list[FetchedMessage]:
        self.fetched.append(list(uids))
        result = []
        # Servers answer FETCH in their own order.
        for uid in sorted(uids):
            message = self.messages.get(uid) if mailbox == self.mailbox else None
            if message is None:
                continue
            result.append(
                FetchedMessage(
                    uid=uid,
                    envelope=message.envelope(),
                    source=message.source() if include_source else None,
                )
            )
        return result

    def fetch_message(self, mailbox: str, uid: int) -> FetchedMessage | None:
        fetched = self.fetch_envelopes(mailbox, [uid], include_source=True)
        return fetched[0] if fetched else None

    def fetch_attachments(self, mailbox: str, uid: int) -> list[AttachmentInfo] | None:
        message = self.messages.get(uid) if mailbox == self.mailbox else None
        if message is None:
            return None
        return [
            AttachmentInfo(filename=name, content_type=content_type, size=len(payload))
            for name, content_type, payload in message.attachments
        ]

    def status(self, mailbox: str) -> MailboxStatus:
        unseen = sum(1 for message in self.messages.values() if not message.seen)
        return MailboxStatus(
            path=mailbox,
            messages=len(self.messages),
            unseen=unseen,
            uid_next=max(self.messages, default=0) + 1,
            uid_validity="1",
        )

    def list_folders(self) -> list[MailboxInfo]:
        return [MailboxInfo(path=self.mailbox, name=self.mailbox, messages=len(self.messages))]


class FakeSessionProvider:
    """Stands in for ImapClient: yields a FakeStore, optionally dropping first."""

    def __init__(self, store: FakeStore, connection_failures: int = 0) -> None:
        self.store = store
        self.connection_failures = connection_failures
        self.sessions_opened = 0

    @contextmanager
    def session(self) -> Iterator[FakeStore]:
        self.sessions_opened += 1
        if self.connection_failures > 0:
            self.connection_failures -= 1
            raise MailStoreConnectionError("connection reset by peer", mailbox=self.store.mailbox)
        yield self.store


class FakeIMAPClient:
    """Records IMAPClient calls and returns canned responses."""

    def __init__(
        self,
        capabilities: tuple[str, ...] = ("IMAP4REV1",),
        search_result: list[int] | None = None,
        fetch_result: dict[int, dict[bytes, Any]] | None = None,
        folder_status_result: dict[bytes, Any] | None = None,
        folders: list[tuple[tuple[bytes, ...], bytes, str]] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.capabilities = {capability.upper() for capability in capabilities}
        self.search_result = search_result or []
        self.fetch_result = fetch_result or {}
        self.folder_status_result = folder_status_result or {}
        self.folders = folders or []
        self.errors = errors or {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.normalise_times = True

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    def has_capability(self, capability: str) -> bool:
        return capability.upper() in self.capabilities

    def starttls(self, ssl_context: Any = None) -> None:
        self._record("starttls", ssl_context)

    def login(self, username: str, password: str) -> None:
        self._record("login", username, password)

    def select_folder(self, folder: str, readonly: bool = False) -> dict[bytes, Any]:
        self._record("select_folder", folder, readonly)
        return {b"EXISTS": len(self.fetch_result)}

    def search(self, criteria: Any, charset: str | None = None) -> list[int]:
        self._record("search", criteria, charset)
        return list(self.search_result)

    def fetch(self, messages: Any, data: Any) -> dict[int, dict[bytes, Any]]:
        self._record("fetch", list(messages), list(data))
        return {uid: self.fetch_result[uid] for uid in messages if uid in self.fetch_result}

    def folder_status(self, folder: str, what: Any = None) -> dict[bytes, Any]:
        self._record("folder_status", folder, list(what or ()))
        return dict(self.folder_status_result)

    def list_folders(self, directory: str = "", pattern: str = "*") -> list[Any]:
        self._record("list_folders")
        return list(self.folders)

    def logout(self) -> None:
        self._record("logout")


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Drop logging configuration made by a test (it may bind a captured stream)."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_settings():
    """Provide mock settings for testing."""
    from mail_query_agent.config import Settings

    return Settings(
        _env_file=None,
        imap_user="tester@example.com",
        imap_password="app-password",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def thread_messages() -> list[FakeMessage]:
    """A small conversation plus unrelated mail."""
    return [
        FakeMessage(uid=1, subject="Kickoff", message_id="<a@example.com>"),
        FakeMessage(
            uid=2,
            subject="Re: Kickoff",
            message_id="<b@example.com>",
            in_reply_to="<a@example.com>",
            references=("<a@example.com>",),
        ),
        FakeMessage(uid=3, subject="Lunch?", message_id="<x@example.com>", seen=True),
        FakeMessage(
            uid=4,
            subject="Re: Re: Kickoff",
            message_id="<t@example.com>",
            in_reply_to="<b@example.com>",
            references=("<a@example.com>", "<b@example.com>"),
        ),
        FakeMessage(
            uid=5,
            subject="Re: Re: Re: Kickoff",
            message_id="<c@example.com>",
            in_reply_to="<t@example.com>",
            references=("<a@example.com>", "<b@example.com>", "<t@example.com>"),
        ),
    ]


@pytest.fixture
def fake_store(thread_messages: list[FakeMessage]) -> FakeStore:
    return FakeStore(thread_messages)
