"""Unit tests for the MCP tool server."""

import json

import pytest
from conftest import FakeMessage, FakeSessionProvider, FakeStore
from mcp.server.fastmcp.exceptions import ToolError

from mail_query_agent.agent.mail_agent import MailAgent
from mail_query_agent.config import Settings
from mail_query_agent.models import EnvelopePage, MessageEnvelope
from mail_query_agent.query.ordering import SortDirection, encode_cursor
from mail_query_agent.server import MailTools, build_list_options, create_server, page_or_items

TOOL_NAMES = {
    "mail_list_folders",
    "mail_list_messages",
    "mail_get_message",
    "mail_search",
    "mail_search_advanced",
    "mail_get_mailbox_status",
    "mail_list_unread",
    "mail_list_attachments",
    "mail_query_by_folder",
    "mail_get_thread_context",
}


def _tool_text(result) -> str:
    content = result[0] if isinstance(result, tuple) else result
    return content[0].text


@pytest.fixture
def tools(mock_settings: Settings, fake_store: FakeStore) -> MailTools:
    return MailTools(MailAgent(mock_settings, imap_client=FakeSessionProvider(fake_store)))


class TestHelpers:
    def test_build_list_options_normalizes_input(self) -> None:
        options = build_list_options(limit=None, sort="sideways", cursor="  ", include_snippet=False)

        assert options.sort is SortDirection.DESCENDING
        assert options.cursor is None
        assert options.limit is None

    def test_page_or_items(self) -> None:
        page = EnvelopePage(items=[MessageEnvelope(uid=1, from_="a@x")], next_cursor="MQ")

        assert page_or_items(page, False) == [{"uid": 1, "subject": "", "from": "a@x", "to": "", "date": ""}]
        assert page_or_items(page, True) == {
            "items": [{"uid": 1, "subject": "", "from": "a@x", "to": "", "date": ""}],
            "nextCursor": "MQ",
        }


class TestServer:
    @pytest.mark.asyncio
    async def test_every_tool_is_registered(self, mock_settings: Settings, fake_store: FakeStore) -> None:
        server = create_server(MailAgent(mock_settings, imap_client=FakeSessionProvider(fake_store)))

        tools = await server.list_tools()

        assert {tool.name for tool in tools} == TOOL_NAMES

    @pytest.mark.asyncio
    async def test_camel_case_arguments_are_advertised(self, mock_settings: Settings, fake_store: FakeStore) -> None:
        server = create_server(MailAgent(mock_settings, imap_client=FakeSessionProvider(fake_store)))

        tools = {tool.name: tool for tool in await server.list_tools()}
        properties = tools["mail_search_advanced"].inputSchema["properties"]

        assert {"dateFrom", "sentDateTo", "messageId", "includeSnippet", "returnPage"} <= set(properties)
        assert tools["mail_get_thread_context"].inputSchema["required"] == ["mailbox", "uid"]

    @pytest.mark.asyncio
    async def test_search_sender_argument_is_named_from(self, mock_settings: Settings, fake_store: FakeStore) -> None:
        server = create_server(MailAgent(mock_settings, imap_client=FakeSessionProvider(fake_store)))

        tools = {tool.name: tool for tool in await server.list_tools()}
        properties = tools["mail_search"].inputSchema["properties"]

        assert "from" in properties
        assert "from_" not in properties

    @pytest.mark.asyncio
    async def test_search_by_from_over_the_wire(self, mock_settings: Settings) -> None:
        store = FakeStore([FakeMessage(uid=1, sender="carol@example.com"), FakeMessage(uid=2), FakeMessage(uid=3)])
        server = create_server(MailAgent(mock_settings, imap_client=FakeSessionProvider(store)))

        result = await server.call_tool("mail_search", {"mailbox": "INBOX", "from": "carol"})

        assert [item["uid"] for item in json.loads(_tool_text(result))] == [1]


class TestMailTools:
    @pytest.mark.asyncio
    async def test_list_returns_bare_items_by_default(self, tools: MailTools) -> None:
        out = json.loads(await tools.list_messages("INBOX", limit=2))

        assert [item["uid"] for item in out] == [5, 4]

    @pytest.mark.asyncio
    async def test_list_returns_page_when_asked(self, tools: MailTools) -> None:
        out = json.loads(await tools.list_messages("INBOX", limit=2, returnPage=True))

        assert [item["uid"] for item in out["items"]] == [5, 4]
        assert out["nextCursor"] == encode_cursor(4)

    @pytest.mark.asyncio
    async def test_cursor_implies_page_shape(self, tools: MailTools) -> None:
        out = json.loads(await tools.list_unread("INBOX", limit=10, cursor=encode_cursor(4)))

        assert [item["uid"] for item in out["items"]] == [2, 1]
        assert "nextCursor" not in out

    @pytest.mark.asyncio
    async def test_search_advanced_requires_a_filter(self, tools: MailTools) -> None:
        with pytest.raises(ToolError, match="provide at least one filter"):
            await tools.search_advanced("INBOX", keyword="  ")

    @pytest.mark.asyncio
    async def test_validation_error_becomes_tool_error(self, tools: MailTools) -> None:
        with pytest.raises(ToolError, match="Invalid dateTo: tomorrow"):
            await tools.search_advanced("INBOX", dateTo="tomorrow")

    @pytest.mark.asyncio
    async def test_invalid_cursor_becomes_tool_error(self, tools: MailTools) -> None:
        with pytest.raises(ToolError, match="Invalid cursor value"):
            await tools.list_messages("INBOX", cursor="@@@")

    @pytest.mark.asyncio
    async def test_get_message_not_found(self, tools: MailTools) -> None:
        with pytest.raises(ToolError, match="Message not found: INBOX UID 77"):
            await tools.get_message("INBOX", 77)

    @pytest.mark.asyncio
    async def test_get_message(self, tools: MailTools) -> None:
        out = json.loads(await tools.get_message("INBOX", 2))

        assert out["envelope"]["subject"] == "Re: Kickoff"
        assert out["envelope"]["messageId"] == "<b@example.com>"
        assert out["bodyText"].strip() == "Hello there"

    @pytest.mark.asyncio
    async def test_search_by_sender(self, mock_settings: Settings) -> None:
        store = FakeStore([FakeMessage(uid=1, sender="carol@example.com"), FakeMessage(uid=2)])
        tools = MailTools(MailAgent(mock_settings, imap_client=FakeSessionProvider(store)))

        out = json.loads(await tools.search("INBOX", from_="carol"))

        assert [item["uid"] for item in out] == [1]

    @pytest.mark.asyncio
    async def test_thread_context_shape(self, tools: MailTools) -> None:
        out = json.loads(await tools.get_thread_context("INBOX", 2, limit=2))

        assert out["targetUid"] == 2
        assert [item["uid"] for item in out["items"]] == [5, 4]
        assert out["items"][0]["snippet"] == "Hello there"
        assert out["nextCursor"] == encode_cursor(4)

    @pytest.mark.asyncio
    async def test_status_and_attachments(self, tools: MailTools) -> None:
        status = json.loads(await tools.get_mailbox_status("INBOX"))
        attachments = json.loads(await tools.list_attachments("INBOX", 1))

        assert status["path"] == "INBOX"
        assert status["uidNext"] == 6
        assert attachments == []

    @pytest.mark.asyncio
    async def test_query_by_folder_rejects_empty_query(self, tools: MailTools) -> None:
        with pytest.raises(ToolError, match="query must be a non-empty string"):
            await tools.query_by_folder("INBOX", " ")
