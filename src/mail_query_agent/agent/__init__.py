"""Mail query agent."""

from mail_query_agent.agent.mail_agent import MailAgent

__all__ = ["MailAgent"]
