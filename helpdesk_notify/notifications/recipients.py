"""Recipient resolution: policy matrix + user directory -> email addresses."""

from typing import Optional, Set, Union

from helpdesk_notify.domain.models import (
    ROLE_FOR_CLASS,
    LifecycleEvent,
    RecipientClass,
    TicketSnapshot,
)
from helpdesk_notify.logging import get_logger

from .directory import RecipientDirectory
from .policy import NotificationPolicyStore

logger = get_logger(__name__, component="recipients")


class RecipientResolver:
    """Computes who receives the notification for one event.

    Lookup failures only drop the affected recipients: a partial recipient
    list is an acceptable outcome, a failed dispatch is not.
    """

    def __init__(
        self,
        policy_store: Optional[NotificationPolicyStore] = None,
        directory: Optional[RecipientDirectory] = None,
    ):
        self.policy_store = policy_store or NotificationPolicyStore()
        self.directory = directory or RecipientDirectory()

    def resolve(self, event: Union[LifecycleEvent, str], ticket: TicketSnapshot) -> Set[str]:
        """Return the deduplicated recipient addresses for an event.

        Args:
            event: Lifecycle event (unknown events resolve to nobody)
            ticket: Ticket snapshot the event fired for

        Returns:
            Set of trimmed, non-empty email addresses
        """
        event_name = event.value if isinstance(event, LifecycleEvent) else str(event)
        config = self.policy_store.get_matrix().get(event_name)
        if not config:
            return set()

        emails: Set[str] = set()

        if config.get(RecipientClass.CREATOR.value):
            self._add_user_email(emails, ticket.creator, RecipientClass.CREATOR)

        if config.get(RecipientClass.ASSIGNEE.value) and ticket.assignee:
            self._add_user_email(emails, ticket.assignee, RecipientClass.ASSIGNEE)

        roles = {
            role
            for target, role in ROLE_FOR_CLASS.items()
            if config.get(target.value)
        }
        if roles:
            try:
                emails.update(self.directory.emails_for_roles(roles))
            except Exception as e:
                logger.warning(
                    f"Role recipient lookup failed for {sorted(roles)}: {e}",
                    extra={
                        "event": "notification.recipients.lookup_failed",
                        "target": "roles",
                        "error_type": type(e).__name__,
                    },
                )

        return {email.strip() for email in emails if email and email.strip()}

    def _add_user_email(
        self, emails: Set[str], identifier: Optional[str], target: RecipientClass
    ) -> None:
        try:
            user = self.directory.resolve_by_name_or_username(identifier)
        except Exception as e:
            logger.warning(
                f"Recipient lookup failed for {target.value} '{identifier}': {e}",
                extra={
                    "event": "notification.recipients.lookup_failed",
                    "target": target.value,
                    "error_type": type(e).__name__,
                },
            )
            return

        if user is None:
            logger.debug(f"No user found for {target.value} '{identifier}'")
            return

        if user.notification_email:
            emails.add(user.notification_email)
