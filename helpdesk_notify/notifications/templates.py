"""Template rendering for ticket notification emails.

Subjects and plain bodies come from the notification policy store and use
``{placeholder}`` tokens that are substituted literally. The HTML alternative
wraps the rendered plain body in a packaged Jinja2 layout.
"""

import re
from typing import Dict, Mapping, Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from helpdesk_notify.domain.models import LifecycleEvent, TicketSnapshot
from helpdesk_notify.logging import get_logger

from .models import NotificationTemplateError, RenderedMessage
from .policy import DEFAULT_TEMPLATES, NotificationPolicyStore, TemplateMap

logger = get_logger(__name__, component="templates")

MISSING_VALUE = "-"
DEFAULT_ACTOR = "System"
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def build_placeholder_values(
    ticket: TicketSnapshot,
    actor_name: Optional[str] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Map every supported placeholder to its substitution text.

    Empty ticket fields render as a dash, a missing actor as "System" and a
    missing comment as an empty string.
    """
    extra = extra or {}

    def field(value: Optional[str]) -> str:
        return value if value else MISSING_VALUE

    return {
        "ticketId": str(ticket.id),
        "summary": field(ticket.summary),
        "department": field(ticket.department),
        "status": field(ticket.status),
        "priority": field(ticket.priority),
        "category": field(ticket.category),
        "assignee": field(ticket.assignee),
        "actor": actor_name or DEFAULT_ACTOR,
        "comment": extra.get("comment") or "",
    }


def substitute(template: str, values: Mapping[str, str]) -> str:
    """Replace ``{name}`` tokens in one pass; tokens without a value are left as written."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


class TemplateRenderer:
    """Renders the subject, plain body and HTML body for one event.

    The Jinja2 environment loads layouts from the
    helpdesk_notify.notifications.email_templates package and caches them
    across renders.
    """

    def __init__(
        self,
        policy_store: Optional[NotificationPolicyStore] = None,
        template_dir: str = "email_templates",
        html_template: str = "ticket_notification.html.j2",
    ):
        """Initialize the renderer.

        Args:
            policy_store: Source of the configured templates (creates default if None)
            template_dir: Directory name within the notifications package
            html_template: Filename of the HTML layout
        """
        self.policy_store = policy_store or NotificationPolicyStore()
        self.html_template_name = html_template

        self.env = Environment(
            loader=PackageLoader("helpdesk_notify.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(
        self,
        event: Union[LifecycleEvent, str],
        ticket: TicketSnapshot,
        actor_name: Optional[str] = None,
        extra: Optional[Mapping[str, str]] = None,
    ) -> RenderedMessage:
        """Render the message for an event.

        Args:
            event: Lifecycle event being notified
            ticket: Ticket snapshot supplying the placeholder values
            actor_name: Who caused the event (defaults to "System")
            extra: Additional values; only "comment" is used

        Returns:
            RenderedMessage with a single-line subject

        Raises:
            NotificationTemplateError: If the HTML layout cannot be rendered
        """
        event_name = event.value if isinstance(event, LifecycleEvent) else str(event)
        template = self._template_for(event_name)
        values = build_placeholder_values(ticket, actor_name, extra)

        subject = substitute(template["subject"], values)
        subject = " ".join(subject.split())
        body = substitute(template["body"], values)

        try:
            html_body = self.env.get_template(self.html_template_name).render(
                subject=subject,
                event=event_name,
                ticket_id=ticket.id,
                body_lines=body.splitlines(),
            )
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

        logger.debug(f"Rendered {event_name} message for ticket {ticket.id}")

        return RenderedMessage(subject=subject, body=body, html_body=html_body)

    def _template_for(self, event_name: str) -> Dict[str, str]:
        default = DEFAULT_TEMPLATES.get(event_name, {"subject": "", "body": ""})

        try:
            templates: TemplateMap = self.policy_store.get_templates()
        except Exception as e:
            logger.warning(
                f"Could not load notification templates, using built-in defaults: {e}",
                extra={"event": "notification.templates.fallback", "error_type": type(e).__name__},
            )
            return dict(default)

        configured = templates.get(event_name, {})
        return {
            part: value if isinstance(value, str) and value.strip() else default.get(part, "")
            for part, value in (
                ("subject", configured.get("subject")),
                ("body", configured.get("body")),
            )
        }
