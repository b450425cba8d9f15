"""Entry points the ticket mutation handler calls after a successful write."""

from typing import List, Optional

from helpdesk_notify.domain.models import LifecycleEvent, TicketSnapshot
from helpdesk_notify.logging import get_logger

from .events import classify
from .service import NotificationService

logger = get_logger(__name__, component="hooks")


class TicketNotifier:
    """Turns ticket mutations into background notification dispatches.

    Each fired event is dispatched independently and nothing is raised back
    to the caller: a notification problem must never fail a ticket write.
    """

    def __init__(self, service: NotificationService):
        self.service = service

    def ticket_created(
        self, ticket: TicketSnapshot, actor: Optional[str] = None
    ) -> List[LifecycleEvent]:
        """Notify about a newly created ticket."""
        return self._fire(classify(None, ticket), ticket, actor)

    def ticket_updated(
        self,
        previous: TicketSnapshot,
        ticket: TicketSnapshot,
        actor: Optional[str] = None,
    ) -> List[LifecycleEvent]:
        """Notify about an update, firing whatever events the change implies."""
        return self._fire(classify(previous, ticket), ticket, actor)

    def comment_added(
        self, ticket: TicketSnapshot, actor: Optional[str], comment: str
    ) -> List[LifecycleEvent]:
        """Notify about a new comment on a ticket."""
        return self._fire(
            [LifecycleEvent.COMMENTED],
            ticket,
            actor,
            {"comment": (comment or "").strip()},
        )

    def _fire(self, events, ticket, actor, extra=None) -> List[LifecycleEvent]:
        fired = []
        for event in events:
            try:
                self.service.dispatch_in_background(event, ticket, actor, extra)
            except Exception as e:
                logger.error(
                    f"Failed to hand off {event.value} for ticket {ticket.id}: {e}",
                    exc_info=True,
                    extra={"event": "notification.hook.failed", "ticket_id": ticket.id},
                )
            fired.append(event)

        if fired:
            logger.debug(
                f"Ticket {ticket.id} fired {', '.join(e.value for e in fired)}",
                extra={"event": "notification.hook.fired", "ticket_id": ticket.id},
            )
        return fired
