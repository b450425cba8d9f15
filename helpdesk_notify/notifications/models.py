"""Data models and exceptions for the notification engine.

This module defines result types and custom exceptions used throughout
the notification pipeline.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when the HTML layout template cannot be rendered."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when the mail server rejects or fails to accept a message."""

    pass


class MailTransportNotConfiguredError(NotificationError):
    """Raised by explicit mail actions when SMTP settings are missing."""

    pass


class InvalidNotificationSettingsError(NotificationError, ValueError):
    """Raised when a replacement matrix or template document is malformed."""

    pass


@dataclass(frozen=True)
class RenderedMessage:
    """Subject and bodies produced for one event.

    Attributes:
        subject: Single-line subject
        body: Plain text body (the configured template after substitution)
        html_body: HTML alternative wrapping the plain body
    """

    subject: str
    body: str
    html_body: str


@dataclass
class DispatchResult:
    """Outcome of one dispatch run.

    Attributes:
        event: Lifecycle event name
        ticket_id: Ticket the event belongs to
        status: sent, no_recipients, unconfigured or failed
        recipients: Addresses the message was (or would have been) sent to
        error: Error message when status is failed
    """

    event: str
    ticket_id: int
    status: str  # "sent", "no_recipients", "unconfigured", "failed"
    recipients: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def is_success(self) -> bool:
        """True only when a message was handed to the mail server."""
        return self.status == "sent"
