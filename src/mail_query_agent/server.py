"""MCP tool server exposing the read-only mail operations over stdio.

Tool names and argument names are part of the wire contract, so tool
arguments keep their camelCase spelling.
"""

from __future__ import annotations

import functools
import json
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Annotated, Any

import structlog
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from mail_query_agent.agent.mail_agent import MailAgent
from mail_query_agent.config import Settings
from mail_query_agent.exceptions import MailAgentError
from mail_query_agent.models import (
    AdvancedSearchCriteria,
    BasicSearchCriteria,
    EnvelopePage,
    ListOptions,
)

logger = structlog.get_logger()

SERVER_NAME = "mail-query-agent"

MISSING_FILTER_MESSAGE = (
    "provide at least one filter (keyword, sender, receiver, subject, body, "
    "date/date range, seen/unseen, or messageId)"
)


def build_list_options(
    limit: float | None = None,
    sort: str | None = None,
    cursor: str | None = None,
    include_snippet: bool = False,
) -> ListOptions:
    """Tool arguments to ListOptions. Blank cursors and unknown sorts are normalized."""
    return ListOptions(limit=limit, sort=sort, cursor=cursor, include_snippet=include_snippet is True)


def page_or_items(page: EnvelopePage, return_page: bool) -> dict[str, Any] | list[dict[str, Any]]:
    """The page object when requested, otherwise the bare item list."""
    if return_page:
        return page.to_wire()
    return [item.to_wire() for item in page.items]


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _not_found(mailbox: str, uid: int) -> ToolError:
    return ToolError(f"Message not found: {mailbox} UID {uid}")


def _keyword_arguments(handler: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
    """Accept aliased argument names that are Python keywords (``from``)."""

    @functools.wraps(handler)
    async def wrapper(**arguments: Any) -> str:
        if "from" in arguments:
            arguments["from_"] = arguments.pop("from")
        return await handler(**arguments)

    return wrapper


@contextmanager
def _tool_errors(tool: str) -> Iterator[None]:
    try:
        yield
    except MailAgentError as exc:
        logger.warning("tool_failed", tool=tool, error=str(exc), error_type=type(exc).__name__)
        raise ToolError(f"Error: {exc}") from exc


class MailTools:
    """Tool handlers bound to one agent."""

    def __init__(self, agent: MailAgent) -> None:
        self.agent = agent

    async def list_folders(self) -> str:
        """List all mail folders (mailboxes). Use this to see INBOX, Sent, etc."""
        with _tool_errors("mail_list_folders"):
            folders = await self.agent.list_folders()
        return _dump([folder.to_wire() for folder in folders])

    async def list_messages(
        self,
        mailbox: str,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = False,  # noqa: N803
        returnPage: bool = False,  # noqa: N803
    ) -> str:
        """List recent messages in a folder (envelope only by default).

        Supports sort/cursor/snippet options. Limit defaults to 50 and is
        capped globally.
        """
        options = build_list_options(limit, sort, cursor, includeSnippet)
        with _tool_errors("mail_list_messages"):
            page = await self.agent.list_messages_page(mailbox, options)
        return _dump(page_or_items(page, returnPage or options.cursor is not None))

    async def get_message(self, mailbox: str, uid: int) -> str:
        """Get one message by folder and UID: envelope plus plain-text body (HTML converted)."""
        with _tool_errors("mail_get_message"):
            message = await self.agent.get_message(mailbox, uid)
        if message is None:
            raise _not_found(mailbox, uid)
        return _dump(message.to_wire())

    async def search(
        self,
        mailbox: str,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = False,  # noqa: N803
        returnPage: bool = False,  # noqa: N803
        from_: Annotated[str | None, Field(alias="from", description="Sender contains")] = None,
        to: str | None = None,
        subject: str | None = None,
        body: str | None = None,
        since: str | None = None,
        before: str | None = None,
        unseen: bool = False,
    ) -> str:
        """Search messages in a folder by from, to, subject, body, since/before date or unread."""
        options = build_list_options(limit, sort, cursor, includeSnippet)
        criteria = BasicSearchCriteria(
            from_=from_,
            to=to,
            subject=subject,
            body=body,
            since=since,
            before=before,
            unseen=unseen is True,
        )
        with _tool_errors("mail_search"):
            page = await self.agent.search_page(mailbox, criteria, options)
        return _dump(page_or_items(page, returnPage or options.cursor is not None))

    async def search_advanced(
        self,
        mailbox: str,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = False,  # noqa: N803
        returnPage: bool = False,  # noqa: N803
        keyword: str | None = None,
        sender: str | None = None,
        receiver: str | None = None,
        subject: str | None = None,
        body: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
        date: str | None = None,
        dateFrom: str | None = None,  # noqa: N803
        dateTo: str | None = None,  # noqa: N803
        sentDate: str | None = None,  # noqa: N803
        sentDateFrom: str | None = None,  # noqa: N803
        sentDateTo: str | None = None,  # noqa: N803
        seen: bool | None = None,
        unseen: bool | None = None,
        messageId: str | None = None,  # noqa: N803
    ) -> str:
        """Advanced search with keyword, sender/receiver, subject, body, cc/bcc,
        received/sent date ranges, read state and Message-ID. Filters combine
        with AND. Date-only upper bounds are inclusive.
        """
        options = build_list_options(limit, sort, cursor, includeSnippet)
        criteria = AdvancedSearchCriteria(
            keyword=keyword,
            sender=sender,
            receiver=receiver,
            subject=subject,
            body=body,
            cc=cc,
            bcc=bcc,
            date=date,
            date_from=dateFrom,
            date_to=dateTo,
            sent_date=sentDate,
            sent_date_from=sentDateFrom,
            sent_date_to=sentDateTo,
            seen=seen,
            unseen=unseen,
            message_id=messageId,
        )
        if not criteria.has_filter():
            raise ToolError(f"Error: {MISSING_FILTER_MESSAGE}")
        with _tool_errors("mail_search_advanced"):
            page = await self.agent.search_advanced_page(mailbox, criteria, options)
        return _dump(page_or_items(page, returnPage or options.cursor is not None))

    async def get_mailbox_status(self, mailbox: str) -> str:
        """Get message counters for one folder (messages, unseen, recent, UID metadata)."""
        with _tool_errors("mail_get_mailbox_status"):
            status = await self.agent.mailbox_status(mailbox)
        return _dump(status.to_wire())

    async def list_unread(
        self,
        mailbox: str,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = False,  # noqa: N803
        returnPage: bool = False,  # noqa: N803
    ) -> str:
        """List unread messages in a folder (envelope only by default)."""
        options = build_list_options(limit, sort, cursor, includeSnippet)
        with _tool_errors("mail_list_unread"):
            page = await self.agent.list_unread_page(mailbox, options)
        return _dump(page_or_items(page, returnPage or options.cursor is not None))

    async def list_attachments(self, mailbox: str, uid: int) -> str:
        """List attachment metadata for one message (no binary content)."""
        with _tool_errors("mail_list_attachments"):
            attachments = await self.agent.list_attachments(mailbox, uid)
        if attachments is None:
            raise _not_found(mailbox, uid)
        return _dump([attachment.to_wire() for attachment in attachments])

    async def query_by_folder(
        self,
        mailbox: str,
        query: str,
        fields: list[str] | None = None,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = False,  # noqa: N803
        returnPage: bool = False,  # noqa: N803
    ) -> str:
        """Free-text query in one folder across subject, body, from and to (OR)."""
        options = build_list_options(limit, sort, cursor, includeSnippet)
        with _tool_errors("mail_query_by_folder"):
            page = await self.agent.query_by_folder_page(mailbox, query, fields, options)
        return _dump(page_or_items(page, returnPage or options.cursor is not None))

    async def get_thread_context(
        self,
        mailbox: str,
        uid: int,
        limit: float | None = None,
        sort: str = "desc",
        cursor: str | None = None,
        includeSnippet: bool = True,  # noqa: N803
    ) -> str:
        """Get related messages in the same thread context using
        Message-ID/References/In-Reply-To. Includes snippets by default.
        """
        options = build_list_options(limit, sort, cursor, includeSnippet)
        with _tool_errors("mail_get_thread_context"):
            thread = await self.agent.get_thread_context(mailbox, uid, options)
        if thread is None:
            raise _not_found(mailbox, uid)
        return _dump(thread.to_wire())


def create_server(agent: MailAgent | None = None, settings: Settings | None = None) -> FastMCP:
    """Create the FastMCP server with every mail tool registered.

    Args:
        agent: Mail agent. If None, creates one from settings.
        settings: Application settings. If None, uses default settings.

    Returns:
        Configured FastMCP instance; call ``run()`` for stdio transport.
    """
    tools = MailTools(agent or MailAgent(settings))
    mcp = FastMCP(
        SERVER_NAME,
        instructions="Read-only mailbox access: list, search and read messages over IMAP.",
    )

    for name, handler in (
        ("mail_list_folders", tools.list_folders),
        ("mail_list_messages", tools.list_messages),
        ("mail_get_message", tools.get_message),
        ("mail_search", _keyword_arguments(tools.search)),
        ("mail_search_advanced", tools.search_advanced),
        ("mail_get_mailbox_status", tools.get_mailbox_status),
        ("mail_list_unread", tools.list_unread),
        ("mail_list_attachments", tools.list_attachments),
        ("mail_query_by_folder", tools.query_by_folder),
        ("mail_get_thread_context", tools.get_thread_context),
    ):
        mcp.add_tool(handler, name=name)

    logger.info("mcp_server_created", name=SERVER_NAME)
    return mcp
