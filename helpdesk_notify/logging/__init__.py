"""Structured logging helpers for the help-desk notification engine."""

import logging
from typing import Optional, Union

from .config import configure_logging
from .context import log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a component name on every record.

    Fields passed through ``extra=`` at the call site are merged on top of the
    adapter's own fields, so a call can still override ``component``.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a module logger, optionally tagged with a component.

    Args:
        name: Logger name (typically __name__)
        component: Component label injected into every record (e.g. "dispatcher")

    Returns:
        Plain logger, or a ComponentLoggerAdapter when component is given

    Example:
        >>> logger = get_logger(__name__, component="dispatcher")
        >>> logger.info("Sent", extra={"event": "notification.dispatch.sent"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = ["get_logger", "configure_logging", "log_context", "ComponentLoggerAdapter"]
