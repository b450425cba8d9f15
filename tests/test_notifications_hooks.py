"""Unit tests for the ticket mutation hooks."""

import threading
import time
from unittest.mock import MagicMock, Mock, call

from helpdesk_notify.config.environment import EnvironmentConfig
from helpdesk_notify.domain.models import LifecycleEvent
from helpdesk_notify.notifications.hooks import TicketNotifier
from helpdesk_notify.notifications.recipients import RecipientResolver
from helpdesk_notify.notifications.service import NotificationService
from helpdesk_notify.notifications.templates import TemplateRenderer
from tests.helpers import StaticDirectory, StaticPolicyStore, make_ticket


def test_ticket_created_fires_opened_and_assigned():
    """Test creating an assigned ticket dispatches both events."""
    service = Mock()
    notifier = TicketNotifier(service)
    ticket = make_ticket(assignee="bob")

    events = notifier.ticket_created(ticket, actor="jane")

    assert events == [LifecycleEvent.OPENED, LifecycleEvent.ASSIGNED]
    assert service.dispatch_in_background.call_args_list == [
        call(LifecycleEvent.OPENED, ticket, "jane", None),
        call(LifecycleEvent.ASSIGNED, ticket, "jane", None),
    ]


def test_ticket_updated_without_changes_dispatches_nothing():
    """Test an edit that fires no event sends nothing."""
    service = Mock()
    ticket = make_ticket()

    events = TicketNotifier(service).ticket_updated(ticket, ticket, actor="bob")

    assert events == []
    service.dispatch_in_background.assert_not_called()


def test_ticket_updated_close():
    """Test closing dispatches closed with the actor."""
    service = Mock()
    before = make_ticket(status="Open")
    after = make_ticket(status="Closed")

    events = TicketNotifier(service).ticket_updated(before, after, actor="bob")

    assert events == [LifecycleEvent.CLOSED]
    service.dispatch_in_background.assert_called_once_with(LifecycleEvent.CLOSED, after, "bob", None)


def test_comment_added_strips_comment():
    """Test comments are dispatched alone with trimmed text."""
    service = Mock()
    ticket = make_ticket(assignee="bob")

    events = TicketNotifier(service).comment_added(ticket, "bob", "  Replaced toner \n")

    assert events == [LifecycleEvent.COMMENTED]
    service.dispatch_in_background.assert_called_once_with(
        LifecycleEvent.COMMENTED, ticket, "bob", {"comment": "Replaced toner"}
    )


def test_hand_off_failure_does_not_raise():
    """Test a failing dispatch hand-off never reaches the mutation handler."""
    service = Mock()
    service.dispatch_in_background.side_effect = [RuntimeError("boom"), None]
    ticket = make_ticket(assignee="bob")

    events = TicketNotifier(service).ticket_created(ticket)

    assert events == [LifecycleEvent.OPENED, LifecycleEvent.ASSIGNED]
    assert service.dispatch_in_background.call_count == 2


def test_slow_mail_server_does_not_delay_caller():
    """Test ticket_created returns while the SMTP send is still blocked."""
    release = threading.Event()
    smtp_client = MagicMock()
    smtp_client.send.side_effect = lambda *args, **kwargs: release.wait(10)
    store = StaticPolicyStore()
    service = NotificationService(
        EnvironmentConfig(
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="helpdesk@example.com",
            smtp_pass="secret",
        ),
        resolver=RecipientResolver(store, StaticDirectory()),
        renderer=TemplateRenderer(store),
        smtp_client=smtp_client,
    )

    try:
        started = time.monotonic()
        events = TicketNotifier(service).ticket_created(make_ticket(), actor="jane")
        elapsed = time.monotonic() - started

        assert events == [LifecycleEvent.OPENED]
        assert not release.is_set()
        assert elapsed < 5

        release.set()
        assert service.background.join(timeout=10)
        smtp_client.send.assert_called_once()
    finally:
        release.set()
        service.close()
