"""Notification service: resolve, render and send one email per event.

Dispatch is best-effort. Every failure is logged and reported in the
returned DispatchResult; nothing is raised back into the ticket mutation
that triggered it. There is no retry and no queue, so a message is sent at
most once.
"""

import logging
import threading
from email.message import EmailMessage
from typing import Mapping, Optional, Union

from helpdesk_notify.config.environment import EnvironmentConfig
from helpdesk_notify.config.models import EmailConfig
from helpdesk_notify.domain.models import LifecycleEvent, TicketSnapshot
from helpdesk_notify.logging import get_logger
from helpdesk_notify.logging.context import log_context
from helpdesk_notify.scheduler import BackgroundDispatcher

from .models import DispatchResult, MailTransportNotConfiguredError, SMTPDeliveryError
from .recipients import RecipientResolver
from .smtp_client import SMTPClient, build_sender_address, validate_recipient
from .templates import TemplateRenderer

logger = get_logger(__name__, component="dispatcher")

TEST_EMAIL_SUBJECT = "Help Desk SMTP Test"
TEST_EMAIL_BODY = "This is a test email from the Help Desk notification settings."


class NotificationService:
    """Dispatches lifecycle event notifications.

    Coordinates the notification flow for one event:
    1. Resolve recipients from the notification matrix
    2. Render subject and bodies
    3. Check the mail transport is configured
    4. Send a single message addressed to every recipient
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        resolver: Optional[RecipientResolver] = None,
        renderer: Optional[TemplateRenderer] = None,
        smtp_client: Optional[SMTPClient] = None,
        background: Optional[BackgroundDispatcher] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            env_config: Environment configuration with SMTP settings
            email_config: Transport settings (defaults if None)
            resolver: Recipient resolver (creates default if None)
            renderer: Template renderer (creates default if None)
            smtp_client: SMTP client (creates default if None)
            background: Started executor for fire-and-forget dispatch (a private
                one is created and started on first use if None)
            logger_instance: Logger instance (uses module logger if None)
        """
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.resolver = resolver or RecipientResolver()
        self.renderer = renderer or TemplateRenderer()
        self.smtp_client = smtp_client or SMTPClient()
        self.background = background
        self._owns_background = False
        self._background_lock = threading.Lock()
        self.logger = logger_instance or logger

    def dispatch(
        self,
        event: Union[LifecycleEvent, str],
        ticket: TicketSnapshot,
        actor_name: Optional[str] = None,
        extra: Optional[Mapping[str, str]] = None,
    ) -> DispatchResult:
        """Send the notification for one event. Never raises.

        Args:
            event: Lifecycle event to notify about
            ticket: Ticket snapshot after the mutation
            actor_name: Who caused the event
            extra: Additional placeholder values (e.g. {"comment": ...})

        Returns:
            DispatchResult describing the outcome
        """
        event_name = event.value if isinstance(event, LifecycleEvent) else str(event)

        with log_context(ticket_id=ticket.id, notification_event=event_name):
            try:
                return self._dispatch(event_name, ticket, actor_name, extra)
            except Exception as e:
                self.logger.error(
                    f"Unexpected error dispatching {event_name} for ticket {ticket.id}: {e}",
                    exc_info=True,
                    extra={
                        "event": "notification.dispatch.failed",
                        "error_type": type(e).__name__,
                    },
                )
                return DispatchResult(
                    event=event_name, ticket_id=ticket.id, status="failed", error=str(e)
                )

    def _dispatch(
        self,
        event_name: str,
        ticket: TicketSnapshot,
        actor_name: Optional[str],
        extra: Optional[Mapping[str, str]],
    ) -> DispatchResult:
        recipients = sorted(self.resolver.resolve(event_name, ticket))
        if not recipients:
            self.logger.info(
                f"No recipients for {event_name} on ticket {ticket.id}",
                extra={"event": "notification.dispatch.no_recipients"},
            )
            return DispatchResult(event=event_name, ticket_id=ticket.id, status="no_recipients")

        rendered = self.renderer.render(event_name, ticket, actor_name, extra)

        sender = build_sender_address(self.env_config)
        if not self.env_config.mail_transport_configured or sender is None:
            self.logger.info(
                f"SMTP not configured, skipping {event_name} notification for ticket {ticket.id}",
                extra={
                    "event": "notification.dispatch.unconfigured",
                    "recipient_count": len(recipients),
                },
            )
            return DispatchResult(
                event=event_name,
                ticket_id=ticket.id,
                status="unconfigured",
                recipients=recipients,
            )

        message = EmailMessage()
        message["Subject"] = rendered.subject
        message["From"] = sender
        message["To"] = ", ".join(recipients)
        message.set_content(rendered.body)
        message.add_alternative(rendered.html_body, subtype="html")

        try:
            self.smtp_client.send(
                message,
                self.env_config,
                use_tls=self.email_config.use_tls,
                timeout=self.email_config.smtp_timeout,
            )
        except SMTPDeliveryError as e:
            self.logger.error(
                f"SMTP delivery failed for {event_name} on ticket {ticket.id}: {e}",
                extra={
                    "event": "notification.dispatch.failed",
                    "error_type": type(e).__name__,
                    "recipients": recipients,
                },
            )
            return DispatchResult(
                event=event_name,
                ticket_id=ticket.id,
                status="failed",
                recipients=recipients,
                error=str(e),
            )

        self.logger.info(
            f"Notification {event_name} sent for ticket {ticket.id} to {len(recipients)} recipient(s)",
            extra={"event": "notification.dispatch.sent", "recipients": recipients},
        )
        return DispatchResult(
            event=event_name, ticket_id=ticket.id, status="sent", recipients=recipients
        )

    def dispatch_in_background(
        self,
        event: Union[LifecycleEvent, str],
        ticket: TicketSnapshot,
        actor_name: Optional[str] = None,
        extra: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Queue dispatch() on the background executor and return immediately.

        Never runs the dispatch on the caller's thread. Submission failures
        are logged, never raised.
        """
        try:
            self._executor().submit(self.dispatch, event, ticket, actor_name, extra)
        except Exception as e:
            event_name = event.value if isinstance(event, LifecycleEvent) else str(event)
            self.logger.error(
                f"Could not schedule {event_name} notification for ticket {ticket.id}: {e}",
                extra={
                    "event": "notification.dispatch.submit_failed",
                    "ticket_id": ticket.id,
                    "error_type": type(e).__name__,
                },
            )

    def close(self, wait: bool = True) -> None:
        """Stop the executor this service created for itself, if any.

        An injected executor belongs to the caller and is left running.
        """
        with self._background_lock:
            if self._owns_background and self.background is not None:
                self.background.shutdown(wait=wait)
                self.background = None
                self._owns_background = False

    def _executor(self) -> BackgroundDispatcher:
        with self._background_lock:
            if self.background is None:
                self.background = BackgroundDispatcher()
                self._owns_background = True
            if self._owns_background:
                self.background.start()
            return self.background

    def send_test_email(self, to: str) -> str:
        """Send the SMTP test message to a single address.

        Args:
            to: Destination address

        Returns:
            The normalized destination address

        Raises:
            MailTransportNotConfiguredError: If SMTP settings are missing
            ValueError: If the address is invalid
            SMTPDeliveryError: If the mail server rejects the message
        """
        sender = build_sender_address(self.env_config)
        if not self.env_config.mail_transport_configured or sender is None:
            raise MailTransportNotConfiguredError(
                "SMTP is not configured. Set SMTP_HOST, SMTP_PORT, SMTP_USER and SMTP_PASS."
            )

        recipient = validate_recipient(to)

        message = EmailMessage()
        message["Subject"] = TEST_EMAIL_SUBJECT
        message["From"] = sender
        message["To"] = recipient
        message.set_content(TEST_EMAIL_BODY)

        self.smtp_client.send(
            message,
            self.env_config,
            use_tls=self.email_config.use_tls,
            timeout=self.email_config.smtp_timeout,
        )

        self.logger.info(
            f"Test email sent to {recipient}",
            extra={"event": "notification.test_email.sent"},
        )
        return recipient
