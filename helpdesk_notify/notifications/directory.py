"""Recipient directory backed by the users table."""

from typing import Iterable, Optional, Set

from helpdesk_notify.domain.models import UserRecord
from helpdesk_notify.persistence.database import SessionFactory, get_session
from helpdesk_notify.persistence.repositories import UserRepository


class RecipientDirectory:
    """Resolves ticket identities and roles to users and email addresses.

    Each lookup runs in its own short session, so one directory instance can
    be shared by concurrent dispatch jobs.
    """

    def __init__(self, session_factory: SessionFactory = get_session):
        self.session_factory = session_factory

    def resolve_by_name_or_username(self, identifier: Optional[str]) -> Optional[UserRecord]:
        """Find the user a ticket field refers to.

        Tickets store creators and assignees either as a username or as the
        "first last" display name, so the username is tried first (exact,
        untrimmed) and the trimmed display name second.

        Args:
            identifier: Username or display name (None/blank allowed)

        Returns:
            Matching UserRecord, or None when nothing matches

        Raises:
            PersistenceError: If the user store cannot be read
        """
        if identifier is None or not identifier.strip():
            return None

        with self.session_factory() as session:
            repo = UserRepository(session)
            user = repo.get_by_username(identifier)
            if user is None:
                user = repo.find_by_display_name(identifier)
            return user

    def emails_for_roles(self, roles: Iterable[str]) -> Set[str]:
        """Collect the addresses of everyone holding one of the roles.

        Super users are always included once any role is targeted; an empty
        role set yields an empty result.

        Args:
            roles: Literal role names

        Returns:
            Trimmed, non-empty, deduplicated email addresses

        Raises:
            PersistenceError: If the user store cannot be read
        """
        roles = set(roles)
        if not roles:
            return set()

        with self.session_factory() as session:
            users = UserRepository(session).list_by_roles(roles)

        return {user.notification_email for user in users if user.notification_email}
