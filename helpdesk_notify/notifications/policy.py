"""Notification policy store: who is notified, and with which message.

The matrix and the templates live in one settings row as the documents an
administrator last saved. Reads merge them leaf by leaf over the built-in
defaults below, so a stored document may be partial. Writes replace a whole
document; there is no write-time merge.
"""

import copy
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, StrictBool, StrictStr, TypeAdapter, ValidationError

from helpdesk_notify.domain.models import LifecycleEvent, RecipientClass
from helpdesk_notify.logging import get_logger
from helpdesk_notify.persistence.database import SessionFactory, get_session
from helpdesk_notify.persistence.exceptions import PersistenceError
from helpdesk_notify.persistence.repositories import NotificationSettingsRepository

from .models import InvalidNotificationSettingsError

logger = get_logger(__name__, component="policy")

NotificationMatrix = Dict[str, Dict[str, bool]]
TemplateMap = Dict[str, Dict[str, str]]

_TARGETS = [target.value for target in RecipientClass]


def _row(creator, assignee, technician, manager, admin) -> Dict[str, bool]:
    return dict(zip(_TARGETS, (creator, assignee, technician, manager, admin)))


DEFAULT_MATRIX: NotificationMatrix = {
    LifecycleEvent.OPENED.value: _row(True, False, True, True, True),
    LifecycleEvent.ASSIGNED.value: _row(False, True, False, True, True),
    LifecycleEvent.COMMENTED.value: _row(True, True, False, False, False),
    LifecycleEvent.CLOSED.value: _row(True, True, True, True, True),
    LifecycleEvent.CLOSED_DUPLICATE.value: _row(True, True, True, True, True),
    LifecycleEvent.REOPENED.value: _row(True, True, True, True, True),
}

_DEFAULT_SUBJECTS = {
    LifecycleEvent.OPENED.value: "New Ticket #{ticketId}: {summary}",
    LifecycleEvent.ASSIGNED.value: "Ticket Assigned #{ticketId}: {summary}",
    LifecycleEvent.COMMENTED.value: "New Comment on Ticket #{ticketId}",
    LifecycleEvent.CLOSED.value: "Ticket Closed #{ticketId}: {summary}",
    LifecycleEvent.CLOSED_DUPLICATE.value: "Ticket Closed as Duplicate #{ticketId}: {summary}",
    LifecycleEvent.REOPENED.value: "Ticket Reopened #{ticketId}: {summary}",
}

_DEFAULT_BODY_LINES = [
    "Ticket ID: {ticketId}",
    "Summary: {summary}",
    "Department: {department}",
    "Status: {status}",
    "Priority: {priority}",
    "Category: {category}",
    "Assignee: {assignee}",
    "Actor: {actor}",
]


def _default_body(event: str) -> str:
    lines = [f"Event: {event}", *_DEFAULT_BODY_LINES]
    if event == LifecycleEvent.COMMENTED.value:
        lines.append("Comment: {comment}")
    return "\n".join(lines)


DEFAULT_TEMPLATES: TemplateMap = {
    event: {"subject": subject, "body": _default_body(event)}
    for event, subject in _DEFAULT_SUBJECTS.items()
}


class _EventPolicyDocument(BaseModel):
    creator: Optional[StrictBool] = None
    assignee: Optional[StrictBool] = None
    technician: Optional[StrictBool] = None
    manager: Optional[StrictBool] = None
    admin: Optional[StrictBool] = None


class _TemplateDocument(BaseModel):
    subject: Optional[StrictStr] = None
    body: Optional[StrictStr] = None


_matrix_adapter = TypeAdapter(Dict[LifecycleEvent, _EventPolicyDocument])
_templates_adapter = TypeAdapter(Dict[LifecycleEvent, _TemplateDocument])

_EVENTS = {event.value for event in LifecycleEvent}
_TEMPLATE_PARTS = ("subject", "body")


def _drop_unknown(document: Any, fields) -> Tuple[Any, List[str]]:
    """Remove unknown events and unknown per-event fields from a document.

    Anything that is not a mapping is returned untouched for validation to
    reject. Returns the cleaned document and the dotted names that were dropped.
    """
    if not isinstance(document, Mapping):
        return document, []

    kept: Dict[str, Any] = {}
    ignored: List[str] = []
    for event, entry in document.items():
        if event not in _EVENTS:
            ignored.append(str(event))
            continue
        if isinstance(entry, Mapping):
            ignored.extend(f"{event}.{key}" for key in entry if key not in fields)
            entry = {key: value for key, value in entry.items() if key in fields}
        kept[event] = entry

    return kept, ignored


def merge_matrix(stored: Any) -> NotificationMatrix:
    """Overlay a stored matrix document on the built-in defaults.

    Stored boolean leaves win, explicit ``false`` included. Missing or
    non-boolean leaves fall back to the default; unknown events and targets
    are ignored.
    """
    stored = stored if isinstance(stored, Mapping) else {}
    merged: NotificationMatrix = {}

    for event, defaults in DEFAULT_MATRIX.items():
        overrides = stored.get(event)
        overrides = overrides if isinstance(overrides, Mapping) else {}
        merged[event] = {
            target: overrides[target] if isinstance(overrides.get(target), bool) else default
            for target, default in defaults.items()
        }

    return merged


def merge_templates(stored: Any) -> TemplateMap:
    """Overlay a stored template document on the built-in defaults.

    A stored subject or body is used only when it is a non-blank string, so a
    partially specified template keeps the default for the missing part.
    """
    stored = stored if isinstance(stored, Mapping) else {}
    merged: TemplateMap = {}

    for event, defaults in DEFAULT_TEMPLATES.items():
        overrides = stored.get(event)
        overrides = overrides if isinstance(overrides, Mapping) else {}
        merged[event] = {}
        for part, default in defaults.items():
            value = overrides.get(part)
            merged[event][part] = value if isinstance(value, str) and value.strip() else default

    return merged


def _validation_message(e: ValidationError) -> str:
    problems = [
        f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in e.errors()
    ]
    return "; ".join(problems)


class NotificationPolicyStore:
    """Read and replace the notification matrix and templates.

    No in-process cache: every read goes to the settings row, so a
    replacement is visible to the next dispatch.
    """

    def __init__(self, session_factory: SessionFactory = get_session):
        self.session_factory = session_factory

    def get_matrix(self) -> NotificationMatrix:
        """Return the effective matrix (stored document merged over defaults).

        Falls back to the built-in defaults if the store cannot be read.
        """
        try:
            record = self._load()
        except PersistenceError as e:
            logger.warning(
                f"Notification settings unavailable, using built-in matrix: {e}",
                extra={"event": "notification_settings.read_failed", "document": "matrix"},
            )
            return copy.deepcopy(DEFAULT_MATRIX)

        return merge_matrix(self._parse(record.matrix_json, "matrix"))

    def get_templates(self) -> TemplateMap:
        """Return the effective templates (stored document merged over defaults).

        Falls back to the built-in defaults if the store cannot be read.
        """
        try:
            record = self._load()
        except PersistenceError as e:
            logger.warning(
                f"Notification settings unavailable, using built-in templates: {e}",
                extra={"event": "notification_settings.read_failed", "document": "templates"},
            )
            return copy.deepcopy(DEFAULT_TEMPLATES)

        return merge_templates(self._parse(record.templates_json, "templates"))

    def replace_matrix(self, matrix: Any, actor: Optional[str] = None) -> NotificationMatrix:
        """Overwrite the stored matrix document.

        Args:
            matrix: Mapping of event name to {target class: bool}; may be partial.
                Unknown events and targets are dropped with a warning.
            actor: Administrator performing the change (recorded for auditing)

        Returns:
            The document as stored

        Raises:
            InvalidNotificationSettingsError: If the document is malformed
            PersistenceError: If the store cannot be written
        """
        cleaned, ignored = _drop_unknown(matrix, _TARGETS)
        try:
            validated = _matrix_adapter.validate_python(cleaned)
        except ValidationError as e:
            raise InvalidNotificationSettingsError(
                f"Invalid notification matrix: {_validation_message(e)}"
            ) from e

        document = {
            event.value: policy.model_dump(exclude_none=True)
            for event, policy in validated.items()
        }
        with self.session_factory() as session:
            NotificationSettingsRepository(session).replace_matrix(
                document, updated_at=datetime.now(timezone.utc), updated_by=actor
            )

        self._log_update("matrix", actor, ignored)
        return document

    def replace_templates(self, templates: Any, actor: Optional[str] = None) -> TemplateMap:
        """Overwrite the stored template document.

        Args:
            templates: Mapping of event name to {"subject": str, "body": str}.
                Unknown events and fields are dropped with a warning.
            actor: Administrator performing the change (recorded for auditing)

        Returns:
            The document as stored

        Raises:
            InvalidNotificationSettingsError: If the document is malformed
            PersistenceError: If the store cannot be written
        """
        cleaned, ignored = _drop_unknown(templates, _TEMPLATE_PARTS)
        try:
            validated = _templates_adapter.validate_python(cleaned)
        except ValidationError as e:
            raise InvalidNotificationSettingsError(
                f"Invalid notification templates: {_validation_message(e)}"
            ) from e

        document = {
            event.value: template.model_dump(exclude_none=True)
            for event, template in validated.items()
        }
        with self.session_factory() as session:
            NotificationSettingsRepository(session).replace_templates(
                document, updated_at=datetime.now(timezone.utc), updated_by=actor
            )

        self._log_update("templates", actor, ignored)
        return document

    def _load(self):
        with self.session_factory() as session:
            return NotificationSettingsRepository(session).ensure_defaults(
                DEFAULT_MATRIX, DEFAULT_TEMPLATES
            )

    def _parse(self, raw: Optional[str], document: str) -> Any:
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(
                f"Stored notification {document} is not valid JSON, using defaults: {e}",
                extra={"event": "notification_settings.corrupt", "document": document},
            )
            return {}

    def _log_update(self, document: str, actor: Optional[str], ignored: List[str]) -> None:
        if ignored:
            logger.warning(
                f"Ignored unknown keys in notification {document}: {', '.join(ignored)}",
                extra={
                    "event": "notification_settings.unknown_keys_ignored",
                    "document": document,
                    "keys": ignored,
                },
            )
        logger.info(
            f"Notification {document} replaced",
            extra={
                "event": "notification_settings.updated",
                "document": document,
                "actor": actor or "unknown",
            },
        )
