"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the user directory and the
singleton notification settings row, plus conversions to domain models.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from helpdesk_notify.domain.models import NotificationSettingsRecord, UserRecord

logger = logging.getLogger(__name__)

Base = declarative_base()

# The notification settings table holds exactly one row with this key.
SETTINGS_ROW_ID = 1


class UserModel(Base):
    """ORM model for users table.

    Only the columns the notification engine reads are mapped; passwords and
    other account data belong to the authentication layer.
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True, nullable=False)
    username = Column(String(255), nullable=False, unique=True)
    role = Column(String(64), nullable=True)
    is_super = Column(Boolean, nullable=False, default=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)

    __table_args__ = (Index("idx_users_role", "role"),)

    def to_domain(self) -> UserRecord:
        """Convert ORM model to domain model."""
        return UserRecord(
            id=self.id,
            username=self.username,
            role=self.role,
            is_super=bool(self.is_super),
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
        )

    @classmethod
    def from_domain(cls, user: UserRecord) -> "UserModel":
        """Create ORM model from domain model."""
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            is_super=user.is_super,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
        )


class NotificationSettingsModel(Base):
    """ORM model for notification_settings table.

    Singleton row (id = SETTINGS_ROW_ID) storing the matrix and template
    documents as JSON text.
    """

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, nullable=False)
    notification_matrix = Column(Text, nullable=True)
    notification_templates = Column(Text, nullable=True)

    # Audit fields (timestamp stored as ISO 8601 string)
    updated_at = Column(String(50), nullable=True)
    updated_by = Column(String(255), nullable=True)

    def to_domain(self) -> NotificationSettingsRecord:
        """Convert ORM model to domain model."""
        return NotificationSettingsRecord(
            matrix_json=self.notification_matrix,
            templates_json=self.notification_templates,
            updated_at=_parse_datetime(self.updated_at),
            updated_by=self.updated_by,
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 UTC string for storage."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back into an aware UTC datetime."""
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
