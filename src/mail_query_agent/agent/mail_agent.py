"""Mail query agent implementation.

This module provides the agent that runs every read-only mail operation:
validate the request, open an IMAP session in a worker thread, run the
query core against it and hydrate the resulting page.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import TypeVar

import structlog

from mail_query_agent.config import Settings
from mail_query_agent.exceptions import MailStoreConnectionError, ValidationError
from mail_query_agent.imap.client import ImapClient, ImapMailboxSession
from mail_query_agent.imap.parsing import body_text_from_source, envelope_from_fetch
from mail_query_agent.models import (
    AdvancedSearchCriteria,
    AttachmentInfo,
    BasicSearchCriteria,
    EnvelopePage,
    FolderQueryField,
    ListOptions,
    MailboxInfo,
    MailboxStatus,
    MessageContent,
    MessageEnvelope,
    ThreadContextResult,
)
from mail_query_agent.query.criteria import (
    Predicate,
    compile_basic_criteria,
    compile_criteria,
    compile_folder_query,
    uid_range_after,
)
from mail_query_agent.query.ordering import SortDirection, decode_cursor
from mail_query_agent.query.pagination import Page, PaginationInput, paginate
from mail_query_agent.query.snippet import truncate_body
from mail_query_agent.query.thread import ThreadContextResolver
from mail_query_agent.utils import retry_on_failure

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_LIST_LIMIT = 50
DEFAULT_THREAD_LIMIT = 20


def _require_mailbox(mailbox: str) -> str:
    if not isinstance(mailbox, str) or not mailbox.strip():
        raise ValidationError("mailbox must be a non-empty string", field="mailbox")
    return mailbox


def _require_uid(uid: int) -> int:
    if isinstance(uid, bool) or not isinstance(uid, int) or uid < 1:
        raise ValidationError("uid must be a positive integer", field="uid")
    return uid


class MailAgent:
    """Read-only mail query agent.

    Every public method is a coroutine. Validation errors are raised before
    any connection is opened; store work runs in a worker thread and is
    re-run after a dropped connection.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        imap_client: ImapClient | None = None,
    ) -> None:
        """Initialize the mail agent.

        Args:
            settings: Application settings. If None, uses default settings.
            imap_client: IMAP client. If None, creates a new one.
        """
        from mail_query_agent.config import get_settings

        self.settings = settings or get_settings()
        self.imap_client = imap_client or ImapClient(self.settings)
        logger.info("mail_agent_initialized")

    async def list_folders(self) -> list[MailboxInfo]:
        """List selectable folders with message and unseen counts."""
        logger.info("listing_folders")
        return await self._run(lambda session: session.list_folders())

    async def list_messages_page(
        self,
        mailbox: str,
        options: ListOptions | None = None,
    ) -> EnvelopePage:
        """List messages in a folder, one page at a time.

        With a cursor, the search is narrowed to the UID range past the
        cursor boundary.
        """
        _require_mailbox(mailbox)
        options = options or ListOptions()
        predicate = Predicate()
        boundary = decode_cursor(options.cursor)
        if boundary is not None:
            predicate = predicate.with_term(uid_range_after(boundary, options.sort))

        logger.info("listing_messages", mailbox=mailbox, limit=options.limit, sort=options.sort.value)
        return await self._run(lambda session: self._search_page(session, mailbox, [predicate], options))

    async def get_message(self, mailbox: str, uid: int) -> MessageContent | None:
        """Fetch one message's envelope and plain-text body.

        Returns:
            MessageContent with the body truncated to the configured
            maximum, or None if the message does not exist.
        """
        _require_mailbox(mailbox)
        _require_uid(uid)
        logger.info("getting_message", mailbox=mailbox, uid=uid)

        def fetch(session: ImapMailboxSession) -> MessageContent | None:
            message = session.fetch_message(mailbox, uid)
            if message is None or not message.source:
                return None
            body = body_text_from_source(message.source)
            return MessageContent(
                envelope=envelope_from_fetch(message),
                body_text=truncate_body(body, self.settings.mail_max_body_length),
            )

        return await self._run(fetch)

    async def search_page(
        self,
        mailbox: str,
        criteria: BasicSearchCriteria,
        options: ListOptions | None = None,
    ) -> EnvelopePage:
        """Simple search by sender, recipient, subject, body, dates and read state."""
        _require_mailbox(mailbox)
        options = options or ListOptions()
        predicate = compile_basic_criteria(criteria)
        decode_cursor(options.cursor)

        logger.info("searching_messages", mailbox=mailbox, terms=len(predicate.terms))
        return await self._run(lambda session: self._search_page(session, mailbox, [predicate], options))

    async def search_advanced_page(
        self,
        mailbox: str,
        criteria: AdvancedSearchCriteria,
        options: ListOptions | None = None,
    ) -> EnvelopePage:
        """Search with every filter dimension combined by AND.

        Raises:
            ValidationError: For contradictory read state, bad dates,
                inverted date ranges or a malformed cursor.
        """
        _require_mailbox(mailbox)
        options = options or ListOptions()
        predicate = compile_criteria(criteria)
        decode_cursor(options.cursor)

        logger.info("searching_messages_advanced", mailbox=mailbox, terms=len(predicate.terms))
        return await self._run(lambda session: self._search_page(session, mailbox, [predicate], options))

    async def mailbox_status(self, mailbox: str) -> MailboxStatus:
        _require_mailbox(mailbox)
        logger.info("getting_mailbox_status", mailbox=mailbox)
        return await self._run(lambda session: session.status(mailbox))

    async def list_unread_page(
        self,
        mailbox: str,
        options: ListOptions | None = None,
    ) -> EnvelopePage:
        return await self.search_page(mailbox, BasicSearchCriteria(unseen=True), options)

    async def list_attachments(self, mailbox: str, uid: int) -> list[AttachmentInfo] | None:
        """Attachment metadata for one message, or None if it does not exist."""
        _require_mailbox(mailbox)
        _require_uid(uid)
        logger.info("listing_attachments", mailbox=mailbox, uid=uid)
        return await self._run(lambda session: session.fetch_attachments(mailbox, uid))

    async def query_by_folder_page(
        self,
        mailbox: str,
        query: str,
        fields: Iterable[FolderQueryField | str] | None = None,
        options: ListOptions | None = None,
    ) -> EnvelopePage:
        """Free-text query across subject, body, from and to (OR of fields).

        Raises:
            ValidationError: If the query is empty.
        """
        _require_mailbox(mailbox)
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string", field="query")
        options = options or ListOptions()
        decode_cursor(options.cursor)

        predicates = compile_folder_query(query, fields)
        if not predicates:
            logger.info("folder_query_no_fields", mailbox=mailbox)
            return EnvelopePage()

        logger.info("querying_folder", mailbox=mailbox, fields=len(predicates))
        return await self._run(lambda session: self._search_page(session, mailbox, predicates, options))

    async def get_thread_context(
        self,
        mailbox: str,
        uid: int,
        options: ListOptions | None = None,
    ) -> ThreadContextResult | None:
        """Messages related to ``uid`` through its reference headers.

        Snippets are included unless the caller turns them off. The target
        itself is always part of the result set.

        Returns:
            ThreadContextResult, or None if the target does not exist.
        """
        _require_mailbox(mailbox)
        _require_uid(uid)
        if options is None:
            options = ListOptions(include_snippet=True)
        elif "include_snippet" not in options.model_fields_set:
            options = options.model_copy(update={"include_snippet": True})
        decode_cursor(options.cursor)

        logger.info("getting_thread_context", mailbox=mailbox, uid=uid)

        def resolve(session: ImapMailboxSession) -> ThreadContextResult | None:
            context = ThreadContextResolver(session).resolve(mailbox, uid)
            if context is None:
                return None
            page = context.page(self._pagination(options, DEFAULT_THREAD_LIMIT))
            return ThreadContextResult(
                target_uid=context.target_uid,
                items=self._hydrate(session, mailbox, page, options),
                next_cursor=page.next_cursor,
            )

        return await self._run(resolve)

    def _pagination(self, options: ListOptions, default_limit: int = DEFAULT_LIST_LIMIT) -> PaginationInput:
        return PaginationInput(
            cursor=options.cursor,
            limit=options.limit,
            ceiling=self.settings.mail_max_results,
            sort=options.sort,
            default_limit=default_limit,
        )

    def _search_page(
        self,
        session: ImapMailboxSession,
        mailbox: str,
        predicates: list[Predicate],
        options: ListOptions,
    ) -> EnvelopePage:
        matched: set[int] = set()
        for predicate in predicates:
            matched.update(session.search(mailbox, predicate))

        page = paginate(matched, self._pagination(options))
        logger.info(
            "search_page_built",
            mailbox=mailbox,
            matched=len(matched),
            returned=len(page.items),
            has_more=page.next_cursor is not None,
        )
        return EnvelopePage(
            items=self._hydrate(session, mailbox, page, options),
            next_cursor=page.next_cursor,
        )

    def _hydrate(
        self,
        session: ImapMailboxSession,
        mailbox: str,
        page: Page,
        options: ListOptions,
    ) -> list[MessageEnvelope]:
        fetched = session.fetch_envelopes(mailbox, list(page.items), include_source=options.include_snippet)
        envelopes = [
            envelope_from_fetch(message, options.include_snippet, self.settings.mail_snippet_length)
            for message in fetched
        ]
        envelopes.sort(key=lambda envelope: envelope.uid, reverse=page.sort is SortDirection.DESCENDING)
        return envelopes

    async def _run(self, operation: Callable[[ImapMailboxSession], T]) -> T:
        @retry_on_failure(
            max_retries=max(0, self.settings.reconnect_retries),
            delay=0,
            retry_on=(MailStoreConnectionError,),
        )
        def run_in_session() -> T:
            with self.imap_client.session() as session:
                return operation(session)

        return await asyncio.to_thread(run_in_session)
