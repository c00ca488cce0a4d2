"""Command-line interface for Mail Query Agent.

This module provides the main entry point for the CLI application:
``serve`` runs the MCP server over stdio, the other commands run single
queries for debugging.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import structlog

from mail_query_agent import __version__
from mail_query_agent.agent.mail_agent import MailAgent
from mail_query_agent.config import get_settings
from mail_query_agent.exceptions import MailAgentError
from mail_query_agent.models import AdvancedSearchCriteria, ListOptions
from mail_query_agent.utils import configure_logging

logger = structlog.get_logger()


def _add_list_options(parser: argparse.ArgumentParser, default_limit: int = 50) -> None:
    parser.add_argument("--limit", type=int, default=default_limit, help=f"Page size (default: {default_limit})")
    parser.add_argument("--sort", choices=["asc", "desc"], default="desc", help="Sort by UID (default: desc)")
    parser.add_argument("--cursor", default=None, help="Cursor from a previous page")
    parser.add_argument("--snippet", action="store_true", help="Include body snippets")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mail-query-agent", description="Mail Query Agent")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the MCP server over stdio")
    subparsers.add_parser("folders", help="List folders with message counts")

    list_parser = subparsers.add_parser("list", help="List messages in a folder")
    list_parser.add_argument("mailbox", nargs="?", default="INBOX", help="Folder (default: INBOX)")
    _add_list_options(list_parser)

    search_parser = subparsers.add_parser("search", help="Advanced search in a folder")
    search_parser.add_argument("mailbox", nargs="?", default="INBOX", help="Folder (default: INBOX)")
    search_parser.add_argument("--keyword", default=None, help="Match any text")
    search_parser.add_argument("--sender", default=None, help="Sender contains")
    search_parser.add_argument("--subject", default=None, help="Subject contains")
    search_parser.add_argument("--date-from", default=None, help="Received since (ISO)")
    search_parser.add_argument("--date-to", default=None, help="Received until (ISO, date-only inclusive)")
    search_parser.add_argument("--unseen", action="store_true", help="Only unread")
    _add_list_options(search_parser)

    thread_parser = subparsers.add_parser("thread", help="Show the thread context of a message")
    thread_parser.add_argument("mailbox", help="Folder")
    thread_parser.add_argument("uid", type=int, help="Message UID")
    _add_list_options(thread_parser, default_limit=20)

    status_parser = subparsers.add_parser("status", help="Show folder counters")
    status_parser.add_argument("mailbox", nargs="?", default="INBOX", help="Folder (default: INBOX)")

    return parser


def _options(args: argparse.Namespace) -> ListOptions:
    # Unset snippet flags leave the operation's own default in place.
    values: dict[str, Any] = {"limit": args.limit, "sort": args.sort, "cursor": args.cursor}
    if args.snippet:
        values["include_snippet"] = True
    return ListOptions(**values)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def _print_page(items: list[Any], next_cursor: str | None) -> None:
    for envelope in items:
        print(f"{envelope.uid}\t{envelope.date or '(no date)'}\t{envelope.from_ or '(unknown sender)'}\t{envelope.subject}")
        if envelope.snippet:
            print(f"\t{envelope.snippet}")
    if next_cursor:
        print(f"\nNext cursor: {next_cursor}")


async def _cmd_folders(agent: MailAgent, args: argparse.Namespace) -> int:
    for folder in await agent.list_folders():
        counts = ""
        if folder.messages is not None:
            counts = f"\t{folder.messages} messages ({folder.unseen or 0} unread)"
        print(f"{folder.path}{counts}")
    return 0


async def _cmd_list(agent: MailAgent, args: argparse.Namespace) -> int:
    page = await agent.list_messages_page(args.mailbox, _options(args))
    _print_page(page.items, page.next_cursor)
    return 0


async def _cmd_search(agent: MailAgent, args: argparse.Namespace) -> int:
    criteria = AdvancedSearchCriteria(
        keyword=args.keyword,
        sender=args.sender,
        subject=args.subject,
        date_from=args.date_from,
        date_to=args.date_to,
        unseen=True if args.unseen else None,
    )
    page = await agent.search_advanced_page(args.mailbox, criteria, _options(args))
    _print_page(page.items, page.next_cursor)
    return 0


async def _cmd_thread(agent: MailAgent, args: argparse.Namespace) -> int:
    thread = await agent.get_thread_context(args.mailbox, args.uid, _options(args))
    if thread is None:
        print(f"Message not found: {args.mailbox} UID {args.uid}", file=sys.stderr)
        return 1
    print(f"Thread context of UID {thread.target_uid}:")
    _print_page(thread.items, thread.next_cursor)
    return 0


async def _cmd_status(agent: MailAgent, args: argparse.Namespace) -> int:
    status = await agent.mailbox_status(args.mailbox)
    _print_json(status.to_wire())
    return 0


_COMMANDS = {
    "folders": _cmd_folders,
    "list": _cmd_list,
    "search": _cmd_search,
    "thread": _cmd_thread,
    "status": _cmd_status,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Mail Query Agent CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    parsed = parser.parse_args(args)

    settings = get_settings()
    configure_logging("DEBUG" if settings.debug else settings.log_level)

    logger.info("mail_query_agent_started", version=__version__, debug=settings.debug, command=parsed.command)

    if parsed.command == "serve":
        from mail_query_agent.server import create_server

        create_server(settings=settings).run()
        return 0

    handler = _COMMANDS.get(parsed.command)
    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    agent = MailAgent(settings)
    try:
        return asyncio.run(handler(agent, parsed))
    except MailAgentError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
