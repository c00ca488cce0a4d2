"""Mail Query Agent - read-only mailbox access for automated agents.

This package exposes folder listing, message retrieval, structured search
and thread context over IMAP, served as MCP tools.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from mail_query_agent.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
