"""IMAP client implementation.

This module provides the connection lifecycle for the IMAP server and a
read-only mailbox session that implements the query core's store
interface.

Notes:
    IMAPClient is synchronous. The agent runs whole operations through
    `asyncio.to_thread`, so everything here stays blocking and simple.
    Every operation opens its own connection and logs out on exit.
"""

from __future__ import annotations

import ssl
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import structlog
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from mail_query_agent.config import Settings
from mail_query_agent.exceptions import (
    AuthenticationError,
    MailStoreConnectionError,
    MailStoreError,
)
from mail_query_agent.imap.parsing import (
    attachments_from_body_structure,
    attachments_from_source,
    thread_headers_from_bytes,
)
from mail_query_agent.imap.search import criteria_charset, predicate_to_criteria
from mail_query_agent.models import AttachmentInfo, MailboxInfo, MailboxStatus
from mail_query_agent.query.criteria import Predicate
from mail_query_agent.query.store import FetchedMessage, ThreadHeaders

logger = structlog.get_logger()

THREAD_HEADER_FIELDS = "BODY.PEEK[HEADER.FIELDS (MESSAGE-ID IN-REPLY-TO REFERENCES)]"
_UNSELECTABLE_FLAGS = {b"\\noselect", b"\\nonexistent"}

ClientFactory = Callable[[Settings], Any]


def _ssl_context(settings: Settings) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not settings.imap_tls_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def default_client_factory(settings: Settings) -> IMAPClient:
    """Open a socket to the configured server (no login yet)."""
    client = IMAPClient(
        settings.imap_host,
        port=settings.imap_port,
        ssl=settings.imap_secure,
        ssl_context=_ssl_context(settings),
        timeout=settings.imap_timeout,
    )
    # Keep server timezones on envelope dates.
    client.normalise_times = False
    return client


@contextmanager
def _translate_errors(action: str, mailbox: str | None = None, uid: int | None = None) -> Iterator[None]:
    try:
        yield
    except (IMAPClientAbortError, OSError) as exc:
        logger.exception(f"imap_{action}_connection_lost", mailbox=mailbox, uid=uid, error=str(exc))
        raise MailStoreConnectionError(str(exc), mailbox=mailbox, uid=uid) from exc
    except IMAPClientError as exc:
        logger.exception(f"imap_{action}_failed", mailbox=mailbox, uid=uid, error=str(exc))
        raise MailStoreError(str(exc), mailbox=mailbox, uid=uid) from exc


def _fetch_value(data: dict[bytes, Any], prefix: bytes) -> Any:
    for key, value in data.items():
        if isinstance(key, bytes) and key.startswith(prefix):
            return value
    return None


def _decode_name(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class ImapMailboxSession:
    """Read-only view of one authenticated IMAP connection.

    Mailboxes are selected read-only and the selection is reused while
    consecutive calls target the same mailbox.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._selected: str | None = None

    def _select(self, mailbox: str) -> None:
        if self._selected == mailbox:
            return
        with _translate_errors("select", mailbox):
            self._client.select_folder(mailbox, readonly=True)
        self._selected = mailbox

    def search(self, mailbox: str, predicate: Predicate) -> set[int]:
        self._select(mailbox)
        criteria = predicate_to_criteria(predicate)
        with _translate_errors("search", mailbox):
            matched = self._client.search(criteria, criteria_charset(criteria))
        logger.debug("imap_search_completed", mailbox=mailbox, criteria=str(criteria), matched=len(matched))
        return set(matched)

    def fetch_headers(self, mailbox: str, uid: int) -> ThreadHeaders | None:
        self._select(mailbox)
        with _translate_errors("fetch_headers", mailbox, uid):
            response = self._client.fetch([uid], ["ENVELOPE", THREAD_HEADER_FIELDS])
        data = response.get(uid)
        if not data:
            return None
        return thread_headers_from_bytes(_fetch_value(data, b"BODY[HEADER"), data.get(b"ENVELOPE"))

    def fetch_envelopes(
        self,
        mailbox: str,
        uids: Sequence[int],
        include_source: bool = False,
    ) -> list[FetchedMessage]:
        if not uids:
            return []
        self._select(mailbox)
        items = ["ENVELOPE", "BODY.PEEK[]"] if include_source else ["ENVELOPE"]
        with _translate_errors("fetch", mailbox):
            response = self._client.fetch(list(uids), items)
        return [
            FetchedMessage(uid=uid, envelope=data.get(b"ENVELOPE"), source=data.get(b"BODY[]"))
            for uid, data in response.items()
        ]

    def fetch_message(self, mailbox: str, uid: int) -> FetchedMessage | None:
        """Envelope and raw source of one message, or None if absent."""
        fetched = self.fetch_envelopes(mailbox, [uid], include_source=True)
        for message in fetched:
            if message.uid == uid:
                return message
        return None

    def fetch_attachments(self, mailbox: str, uid: int) -> list[AttachmentInfo] | None:
        """Attachment metadata of one message, or None if absent.

        Uses BODYSTRUCTURE and falls back to parsing the raw source when
        the server returns no structure.
        """
        self._select(mailbox)
        with _translate_errors("fetch_structure", mailbox, uid):
            response = self._client.fetch([uid], ["BODYSTRUCTURE"])
        data = response.get(uid)
        if data is None:
            return None

        structure = data.get(b"BODYSTRUCTURE")
        if structure:
            return attachments_from_body_structure(structure)

        logger.info("imap_body_structure_missing", mailbox=mailbox, uid=uid)
        message = self.fetch_message(mailbox, uid)
        if message is None:
            return None
        return attachments_from_source(message.source or b"")

    def status(self, mailbox: str) -> MailboxStatus:
        items = [b"MESSAGES", b"UNSEEN", b"RECENT", b"UIDNEXT", b"UIDVALIDITY"]
        with _translate_errors("status", mailbox):
            if self._client.has_capability("CONDSTORE"):
                items.append(b"HIGHESTMODSEQ")
            response = self._client.folder_status(mailbox, items)

        uid_validity = response.get(b"UIDVALIDITY")
        highest_modseq = response.get(b"HIGHESTMODSEQ")
        return MailboxStatus(
            path=mailbox,
            messages=response.get(b"MESSAGES", 0),
            unseen=response.get(b"UNSEEN", 0),
            recent=response.get(b"RECENT", 0),
            uid_next=response.get(b"UIDNEXT"),
            uid_validity=str(uid_validity) if uid_validity is not None else None,
            highest_modseq=str(highest_modseq) if highest_modseq is not None else None,
        )

    def list_folders(self) -> list[MailboxInfo]:
        """Selectable folders with message and unseen counts."""
        with _translate_errors("list"):
            listing = self._client.list_folders()

        folders: list[MailboxInfo] = []
        for flags, delimiter, name in listing:
            if {flag.lower() for flag in flags if isinstance(flag, bytes)} & _UNSELECTABLE_FLAGS:
                continue
            path = _decode_name(name)
            separator = _decode_name(delimiter) if delimiter else ""
            short_name = path.rsplit(separator, 1)[-1] if separator else path

            messages = unseen = None
            try:
                with _translate_errors("status", path):
                    counts = self._client.folder_status(path, [b"MESSAGES", b"UNSEEN"])
                messages = counts.get(b"MESSAGES")
                unseen = counts.get(b"UNSEEN")
            except MailStoreConnectionError:
                raise
            except MailStoreError:
                # Some servers refuse STATUS on special folders; keep the entry.
                pass

            folders.append(MailboxInfo(path=path, name=short_name, messages=messages, unseen=unseen))
        return folders


class ImapClient:
    """IMAP client for read-only mailbox operations.

    This client handles connecting, optional STARTTLS, authentication and
    logout around a :class:`ImapMailboxSession`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize IMAP client.

        Args:
            settings: Application settings. If None, uses default settings.
            client_factory: Builds an unauthenticated IMAPClient from
                settings. Tests pass a fake here.
        """
        from mail_query_agent.config import get_settings

        self.settings = settings or get_settings()
        self._client_factory = client_factory or default_client_factory
        logger.info("imap_client_initialized", host=self.settings.imap_host, port=self.settings.imap_port)

    @contextmanager
    def session(self) -> Iterator[ImapMailboxSession]:
        """Connect, authenticate and yield a session; always log out.

        Raises:
            ConfigurationError: If IMAP credentials are missing or invalid.
            AuthenticationError: If the server rejects the login.
            MailStoreConnectionError: If the server cannot be reached.
        """
        self.settings.validate_imap()

        with _translate_errors("connect"):
            client = self._client_factory(self.settings)

        try:
            self._login(client)
            yield ImapMailboxSession(client)
        finally:
            self._safe_logout(client)

    def _login(self, client: Any) -> None:
        with _translate_errors("login"):
            if not self.settings.imap_secure and client.has_capability("STARTTLS"):
                client.starttls(_ssl_context(self.settings))
            try:
                client.login(self.settings.imap_user, self.settings.imap_password.get_secret_value())
            except LoginError as exc:
                logger.exception("imap_authentication_failed", user=self.settings.imap_user, error=str(exc))
                raise AuthenticationError(str(exc)) from exc
        logger.debug("imap_authenticated", user=self.settings.imap_user)

    @staticmethod
    def _safe_logout(client: Any) -> None:
        try:
            client.logout()
        except (IMAPClientError, OSError) as exc:
            logger.warning("imap_logout_failed", error=str(exc))
