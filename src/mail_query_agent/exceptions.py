"""Custom exceptions for Mail Query Agent."""


class MailAgentError(Exception):
    """Base exception for all Mail Query Agent errors."""


class ConfigurationError(MailAgentError):
    """Exception raised for configuration related errors."""


class AuthenticationError(MailAgentError):
    """Exception raised for authentication failures."""


class ValidationError(MailAgentError):
    """Exception raised for invalid caller input.

    Validation errors are detected before any store interaction and are
    never retried.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidCursorError(ValidationError):
    """Exception raised when a pagination cursor cannot be decoded."""

    def __init__(self, message: str = "Invalid cursor value") -> None:
        super().__init__(message, field="cursor")


class MailStoreError(MailAgentError):
    """Exception raised for IMAP protocol errors.

    The message keeps the server's diagnostic text and is annotated with
    the mailbox and UID the operation was working on, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        mailbox: str | None = None,
        uid: int | None = None,
    ) -> None:
        self.mailbox = mailbox
        self.uid = uid
        context = []
        if mailbox is not None:
            context.append(f"mailbox={mailbox}")
        if uid is not None:
            context.append(f"uid={uid}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class MailStoreConnectionError(MailStoreError):
    """Exception raised when the IMAP connection is lost or unavailable."""
