"""Ticket notification engine.

This package provides the complete notification pipeline:
- classify: Derive lifecycle events from a ticket mutation
- NotificationPolicyStore: Notification matrix and templates with defaults
- RecipientDirectory / RecipientResolver: Who receives each event
- TemplateRenderer: Placeholder substitution plus the Jinja2 HTML layout
- SMTPClient: SMTP wrapper with STARTTLS / implicit TLS support
- NotificationService: Best-effort, fire-and-forget dispatch
- TicketNotifier: Hooks called by the ticket mutation handler
"""

from .directory import RecipientDirectory
from .events import classify
from .hooks import TicketNotifier
from .models import (
    DispatchResult,
    InvalidNotificationSettingsError,
    MailTransportNotConfiguredError,
    NotificationError,
    NotificationTemplateError,
    RenderedMessage,
    SMTPDeliveryError,
)
from .policy import (
    DEFAULT_MATRIX,
    DEFAULT_TEMPLATES,
    NotificationMatrix,
    NotificationPolicyStore,
    TemplateMap,
    merge_matrix,
    merge_templates,
)
from .recipients import RecipientResolver
from .service import NotificationService
from .smtp_client import SMTPClient, build_sender_address, validate_recipient
from .templates import TemplateRenderer

__all__ = [
    # Main service
    "NotificationService",
    "TicketNotifier",
    "classify",
    # Components
    "NotificationPolicyStore",
    "RecipientDirectory",
    "RecipientResolver",
    "TemplateRenderer",
    "SMTPClient",
    # Models and results
    "DispatchResult",
    "RenderedMessage",
    "NotificationMatrix",
    "TemplateMap",
    "DEFAULT_MATRIX",
    "DEFAULT_TEMPLATES",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    "MailTransportNotConfiguredError",
    "InvalidNotificationSettingsError",
    # Utilities
    "merge_matrix",
    "merge_templates",
    "build_sender_address",
    "validate_recipient",
]
