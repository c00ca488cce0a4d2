"""Configuration management for Mail Query Agent.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

import re
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mail_query_agent.exceptions import ConfigurationError

_IPV4_RE = re.compile(r"^(?:\d{1,3}\.){3}\d{1,3}$")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAIL_AGENT_ prefix (e.g., MAIL_AGENT_IMAP_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAIL_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # IMAP Configuration
    imap_host: str = Field(
        default="127.0.0.1",
        description="IMAP server host (a local bridge by default)",
    )
    imap_port: int = Field(
        default=1143,
        description="IMAP server port",
    )
    imap_secure: bool = Field(
        default=False,
        description="Use implicit TLS when connecting",
    )
    imap_tls_verify: bool = Field(
        default=False,
        description=(
            "Verify the server certificate. Local bridges usually serve a "
            "self-signed certificate, so verification is off by default."
        ),
    )
    imap_user: str = Field(
        default="",
        description="IMAP username (usually the mailbox email address)",
    )
    imap_password: SecretStr = Field(
        default=SecretStr(""),
        description="IMAP password",
    )
    imap_timeout: int = Field(
        default=30,
        description="Socket timeout for IMAP operations in seconds",
    )

    # Mail output limits
    mail_max_body_length: int = Field(
        default=50000,
        description="Max length of message body text to return (0 = no limit)",
    )
    mail_max_results: int = Field(
        default=200,
        description="Global hard cap for list/search results",
    )
    mail_snippet_length: int = Field(
        default=400,
        description="Max length of optional snippets in list/search outputs",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    reconnect_retries: int = Field(
        default=1,
        description="Times an operation is re-run after the IMAP connection drops",
    )

    @field_validator("mail_max_body_length", mode="after")
    @classmethod
    def _default_body_length(cls, v: int) -> int:
        return 50000 if v < 0 else v

    @field_validator("mail_max_results", mode="after")
    @classmethod
    def _default_max_results(cls, v: int) -> int:
        return 200 if v < 1 else v

    @field_validator("mail_snippet_length", mode="after")
    @classmethod
    def _default_snippet_length(cls, v: int) -> int:
        return 400 if v < 0 else v

    def validate_imap(self) -> None:
        """Check that IMAP credentials are usable before connecting.

        Raises:
            ConfigurationError: If credentials are missing or the username
                looks like a host, IP address or URL.
        """
        if not self.imap_user:
            raise ConfigurationError(
                "Missing required setting: MAIL_AGENT_IMAP_USER. "
                "Copy .env.example to .env or pass it in the MCP server env."
            )
        if not self.imap_password.get_secret_value():
            raise ConfigurationError(
                "Missing required setting: MAIL_AGENT_IMAP_PASSWORD. "
                "Copy .env.example to .env or pass it in the MCP server env."
            )

        user = self.imap_user.strip().lower()
        host = self.imap_host.strip().lower()
        if (
            user == "localhost"
            or _IPV4_RE.match(user)
            or user == host
            or user.startswith(("http://", "https://"))
        ):
            raise ConfigurationError(
                "Invalid MAIL_AGENT_IMAP_USER value. This must be your mailbox "
                "username/email (e.g. you@example.com), not the IMAP host or an IP/URL."
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
