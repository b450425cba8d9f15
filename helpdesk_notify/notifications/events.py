"""Classification of ticket mutations into lifecycle events."""

from typing import List, Optional

from helpdesk_notify.domain.models import (
    STATUS_CLOSED,
    STATUS_CLOSED_DUPLICATE,
    STATUS_OPEN,
    LifecycleEvent,
    TicketSnapshot,
)


def _status(ticket: TicketSnapshot) -> str:
    # Tickets saved without a status are open
    return ticket.status or STATUS_OPEN


def _assignee(ticket: Optional[TicketSnapshot]) -> str:
    if ticket is None:
        return ""
    return ticket.assignee or ""


def classify(previous: Optional[TicketSnapshot], next: TicketSnapshot) -> List[LifecycleEvent]:
    """Determine which lifecycle events a ticket mutation fired.

    Rules are evaluated independently, so one mutation can fire several
    events (e.g. a reassignment that also closes the ticket). Status rules
    only apply to updates; a newly created ticket fires ``opened`` and, when
    it was created with an assignee, ``assigned``.

    ``commented`` is never derived here: comments do not change the
    snapshot, so the caller fires that event explicitly.

    Args:
        previous: Ticket before the mutation, or None for a new ticket
        next: Ticket after the mutation

    Returns:
        Fired events in a stable order (possibly empty)
    """
    events: List[LifecycleEvent] = []

    if previous is None:
        events.append(LifecycleEvent.OPENED)
    else:
        before, after = _status(previous), _status(next)
        if before != STATUS_CLOSED and after == STATUS_CLOSED:
            events.append(LifecycleEvent.CLOSED)
        if before != STATUS_CLOSED_DUPLICATE and after == STATUS_CLOSED_DUPLICATE:
            events.append(LifecycleEvent.CLOSED_DUPLICATE)
        if before != STATUS_OPEN and after == STATUS_OPEN:
            events.append(LifecycleEvent.REOPENED)

    next_assignee = _assignee(next)
    if next_assignee and next_assignee != _assignee(previous):
        events.append(LifecycleEvent.ASSIGNED)

    return events
