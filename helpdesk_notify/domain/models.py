"""Core domain models for tickets, users, and lifecycle events.

This module defines the data structures shared by the notification engine:
- TicketSnapshot: immutable view of a ticket at the time of an event
- UserRecord: directory entry used to resolve recipients
- LifecycleEvent: named ticket transitions that may trigger notifications
- RecipientClass: stakeholder categories a notification policy can target
- NotificationSettingsRecord: the stored notification settings row
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

STATUS_OPEN = "Open"
STATUS_CLOSED = "Closed"
STATUS_CLOSED_DUPLICATE = "Closed (Duplicate)"


class LifecycleEvent(str, Enum):
    """Ticket transitions that can trigger notifications."""

    OPENED = "opened"
    ASSIGNED = "assigned"
    COMMENTED = "commented"
    CLOSED = "closed"
    CLOSED_DUPLICATE = "closedDuplicate"
    REOPENED = "reopened"


class RecipientClass(str, Enum):
    """Stakeholder categories addressed by the notification matrix."""

    CREATOR = "creator"
    ASSIGNEE = "assignee"
    TECHNICIAN = "technician"
    MANAGER = "manager"
    ADMIN = "admin"


# Target classes that are resolved through role membership rather than
# through a named user on the ticket.
ROLE_FOR_CLASS = {
    RecipientClass.TECHNICIAN: "Technician",
    RecipientClass.MANAGER: "Manager",
    RecipientClass.ADMIN: "Admin",
}


class TicketSnapshot(BaseModel):
    """Immutable view of a ticket read at event time.

    The snapshot is owned by the caller (the ticket mutation handler) and is
    never persisted by the notification engine. Every field except ``id`` may
    be missing; renderers substitute a dash for missing values.
    """

    id: int = Field(..., description="Ticket identifier")
    department: Optional[str] = Field(None, description="Owning department")
    summary: Optional[str] = Field(None, description="One-line ticket summary")
    status: Optional[str] = Field(None, description="Open, Closed, Closed (Duplicate), ...")
    priority: Optional[str] = Field(None, description="High, Medium or Low")
    category: Optional[str] = Field(None, description="Ticket category")
    assignee: Optional[str] = Field(None, description="Username or display name of the assignee")
    creator: Optional[str] = Field(None, description="Username or display name of the creator")

    model_config = {
        "frozen": True,
        "json_schema_extra": {"example": {
            "id": 7,
            "department": "Support",
            "summary": "Printer down",
            "status": "Open",
            "priority": "Medium",
            "category": "General Problem",
            "assignee": None,
            "creator": "jane",
        }},
    }


class UserRecord(BaseModel):
    """User directory entry as seen by the notification engine.

    Read-only to this engine. The ``is_super`` flag grants admin-equivalent
    notification targeting regardless of the literal role.
    """

    id: str = Field(..., description="User identifier")
    username: str = Field(..., min_length=1, description="Unique login name")
    role: Optional[str] = Field(None, description="Admin, Manager, Technician, User or custom")
    is_super: bool = Field(False, description="Implicit admin for recipient purposes")
    first_name: str = Field("", description="Given name")
    last_name: str = Field("", description="Family name")
    email: str = Field("", description="Notification address")

    @field_validator("first_name", "last_name", "email", mode="before")
    @classmethod
    def none_to_empty(cls, v: Optional[str]) -> str:
        """Treat missing optional text columns as empty strings."""
        return "" if v is None else v

    @property
    def display_name(self) -> str:
        """Trimmed "first last", falling back to the username."""
        parts = [part.strip() for part in (self.first_name, self.last_name)]
        name = " ".join(part for part in parts if part)
        return name or self.username

    @property
    def notification_email(self) -> Optional[str]:
        """Trimmed email address, or None when the user has none."""
        email = self.email.strip()
        return email or None


class NotificationSettingsRecord(BaseModel):
    """Stored notification settings row.

    The matrix and templates are kept as the raw JSON documents an
    administrator last saved; merging with built-in defaults happens on read.
    """

    matrix_json: Optional[str] = Field(None, description="Raw notification matrix document")
    templates_json: Optional[str] = Field(None, description="Raw template map document")
    updated_at: Optional[datetime] = Field(None, description="Last replacement time (UTC)")
    updated_by: Optional[str] = Field(None, description="Actor of the last replacement")
