"""Data access layer (repositories) for persistence operations.

This module provides repository classes for the user directory and the
notification settings row. Repositories encapsulate database operations and
return domain models rather than ORM models.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import String, and_, case, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk_notify.domain.models import NotificationSettingsRecord, UserRecord

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import SETTINGS_ROW_ID, NotificationSettingsModel, UserModel, _format_datetime

logger = logging.getLogger(__name__)


def _display_name_expr():
    """SQL form of UserRecord.display_name for users with a name part.

    Evaluates to "" for users without first and last name.
    """
    first = func.trim(func.coalesce(UserModel.first_name, ""), type_=String)
    last = func.trim(func.coalesce(UserModel.last_name, ""), type_=String)
    return case(
        (and_(first != "", last != ""), first + " " + last),
        else_=first + last,
    )


class UserRepository:
    """Repository for user directory lookups."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get_by_username(self, username: str) -> Optional[UserRecord]:
        """Retrieve a user by exact username.

        Args:
            username: Login name (case-sensitive)

        Returns:
            UserRecord if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(UserModel).where(UserModel.username == username)
            user_model = self.session.execute(stmt).scalar_one_or_none()
            return user_model.to_domain() if user_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user by username {username}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e

    def find_by_display_name(self, display_name: str) -> Optional[UserRecord]:
        """Retrieve the first user whose "first last" name equals display_name.

        Comparison is exact and case-sensitive after trimming both sides, and
        runs as a single query. Users without any name part are never matched:
        their display name is their username, which get_by_username() covers.

        Args:
            display_name: Name as shown in the UI (e.g. "Bob Smith")

        Returns:
            UserRecord if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        wanted = display_name.strip()
        if not wanted:
            return None

        try:
            stmt = (
                select(UserModel)
                .where(_display_name_expr() == wanted)
                .order_by(UserModel.id)
                .limit(1)
            )
            user_model = self.session.execute(stmt).scalars().first()
            return user_model.to_domain() if user_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user by display name {wanted}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e

    def list_by_roles(self, roles: Iterable[str]) -> List[UserRecord]:
        """List users holding any of the given roles, plus every super user.

        An empty role set returns an empty list: super users are only added
        when at least one role is targeted.

        Args:
            roles: Literal role names (e.g. {"Technician", "Admin"})

        Returns:
            List of UserRecord (ordered by username)

        Raises:
            PersistenceError: If database error occurs
        """
        role_list = sorted(set(roles))
        if not role_list:
            return []

        try:
            stmt = (
                select(UserModel)
                .where(or_(UserModel.role.in_(role_list), UserModel.is_super.is_(True)))
                .order_by(UserModel.username)
            )
            return [user_model.to_domain() for user_model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing users for roles {role_list}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list users by role: {e}") from e

    def get_all(self) -> List[UserRecord]:
        """Retrieve every user (ordered by username).

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(UserModel).order_by(UserModel.username)
            return [user_model.to_domain() for user_model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving all users: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve users: {e}") from e

    def upsert(self, user: UserRecord) -> UserRecord:
        """Insert a new user or update an existing one (keyed by id).

        Args:
            user: UserRecord to persist

        Returns:
            Persisted UserRecord

        Raises:
            DataIntegrityError: If the username is taken by another user
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(UserModel, user.id)

            if existing:
                existing.username = user.username
                existing.role = user.role
                existing.is_super = user.is_super
                existing.first_name = user.first_name
                existing.last_name = user.last_name
                existing.email = user.email
                self.session.flush()
                return existing.to_domain()

            user_model = UserModel.from_domain(user)
            self.session.add(user_model)
            self.session.flush()
            return user_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting user {user.username}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert user due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting user {user.username}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert user: {e}") from e


class NotificationSettingsRepository:
    """Repository for the singleton notification settings row."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get(self) -> Optional[NotificationSettingsRecord]:
        """Retrieve the settings row.

        Returns:
            NotificationSettingsRecord if the row exists, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            settings_model = self.session.get(NotificationSettingsModel, SETTINGS_ROW_ID)
            return settings_model.to_domain() if settings_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification settings: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification settings: {e}") from e

    def ensure_defaults(
        self, matrix: Mapping[str, Any], templates: Mapping[str, Any]
    ) -> NotificationSettingsRecord:
        """Return the settings row, inserting it with the given documents if missing.

        Args:
            matrix: Matrix document stored when the row is created
            templates: Template document stored when the row is created

        Returns:
            Existing or newly created NotificationSettingsRecord

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(NotificationSettingsModel, SETTINGS_ROW_ID)
            if existing is not None:
                return existing.to_domain()

            settings_model = NotificationSettingsModel(
                id=SETTINGS_ROW_ID,
                notification_matrix=json.dumps(matrix, sort_keys=True),
                notification_templates=json.dumps(templates, sort_keys=True),
            )
            self.session.add(settings_model)
            self.session.flush()
            logger.info(
                "Initialized notification settings with built-in defaults",
                extra={"event": "notification_settings.initialized"},
            )
            return settings_model.to_domain()

        except IntegrityError:
            # Another writer created the row first
            self.session.rollback()
            existing = self.session.get(NotificationSettingsModel, SETTINGS_ROW_ID)
            if existing is not None:
                return existing.to_domain()
            raise RecordNotFoundError("Notification settings row missing after concurrent insert")
        except SQLAlchemyError as e:
            logger.error(f"Error initializing notification settings: {e}", exc_info=True)
            raise PersistenceError(f"Failed to initialize notification settings: {e}") from e

    def replace_matrix(
        self,
        matrix: Mapping[str, Any],
        updated_at: datetime,
        updated_by: Optional[str] = None,
    ) -> NotificationSettingsRecord:
        """Overwrite the stored matrix document (creating the row if needed).

        Raises:
            PersistenceError: If database error occurs
        """
        return self._replace("notification_matrix", matrix, updated_at, updated_by)

    def replace_templates(
        self,
        templates: Mapping[str, Any],
        updated_at: datetime,
        updated_by: Optional[str] = None,
    ) -> NotificationSettingsRecord:
        """Overwrite the stored template document (creating the row if needed).

        Raises:
            PersistenceError: If database error occurs
        """
        return self._replace("notification_templates", templates, updated_at, updated_by)

    def _replace(
        self,
        column: str,
        document: Mapping[str, Any],
        updated_at: datetime,
        updated_by: Optional[str],
    ) -> NotificationSettingsRecord:
        try:
            settings_model = self.session.get(NotificationSettingsModel, SETTINGS_ROW_ID)
            if settings_model is None:
                settings_model = NotificationSettingsModel(id=SETTINGS_ROW_ID)
                self.session.add(settings_model)

            setattr(settings_model, column, json.dumps(document, sort_keys=True))
            settings_model.updated_at = _format_datetime(updated_at)
            settings_model.updated_by = updated_by
            self.session.flush()
            return settings_model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error replacing {column}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to replace notification settings: {e}") from e
