"""Domain models for the help-desk notification engine."""

from .models import (
    ROLE_FOR_CLASS,
    STATUS_CLOSED,
    STATUS_CLOSED_DUPLICATE,
    STATUS_OPEN,
    LifecycleEvent,
    NotificationSettingsRecord,
    RecipientClass,
    TicketSnapshot,
    UserRecord,
)

__all__ = [
    "TicketSnapshot",
    "UserRecord",
    "NotificationSettingsRecord",
    "LifecycleEvent",
    "RecipientClass",
    "ROLE_FOR_CLASS",
    "STATUS_OPEN",
    "STATUS_CLOSED",
    "STATUS_CLOSED_DUPLICATE",
]
