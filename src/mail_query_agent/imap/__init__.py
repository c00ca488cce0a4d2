"""IMAP store adapter."""

from mail_query_agent.imap.client import ImapClient, ImapMailboxSession, default_client_factory

__all__ = ["ImapClient", "ImapMailboxSession", "default_client_factory"]
