"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for STARTTLS and implicit TLS, authentication, and connection cleanup.
"""

import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from helpdesk_notify.config.environment import EnvironmentConfig
from helpdesk_notify.logging import get_logger

from .models import MailTransportNotConfiguredError, SMTPDeliveryError

logger = get_logger(__name__, component="smtp")

IMPLICIT_TLS_PORT = 465


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Port 465 connects with implicit TLS; every other port connects in plain
    text and upgrades with STARTTLS when ``use_tls`` is set. The smtplib
    classes can be replaced with factories for testing.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory for SMTP instances (defaults to smtplib.SMTP)
            smtp_ssl_factory: Factory for SMTP_SSL instances (defaults to smtplib.SMTP_SSL)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        """Send an email message via SMTP.

        Args:
            message: Fully constructed EmailMessage to send
            env_config: Environment configuration with SMTP settings
            use_tls: Whether to upgrade non-465 connections with STARTTLS
            timeout: Socket timeout in seconds

        Raises:
            MailTransportNotConfiguredError: If SMTP settings are incomplete
            SMTPDeliveryError: If message delivery fails
        """
        if not env_config.mail_transport_configured:
            raise MailTransportNotConfiguredError(
                "SMTP is not configured (SMTP_HOST, SMTP_PORT, SMTP_USER and SMTP_PASS are required)"
            )

        host, port = env_config.smtp_host, env_config.smtp_port
        smtp = None
        try:
            if port == IMPLICIT_TLS_PORT:
                logger.debug(f"Connecting to {host}:{port} with implicit TLS")
                smtp = self.smtp_ssl_factory(
                    host, port, timeout=timeout, context=ssl.create_default_context()
                )
            else:
                logger.debug(f"Connecting to {host}:{port}")
                smtp = self.smtp_factory(host, port, timeout=timeout)
                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    smtp.starttls(context=ssl.create_default_context())

            logger.debug(f"Authenticating as {env_config.smtp_user}")
            smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def validate_recipient(address: str) -> str:
    """Validate a single email address and return its normalized form.

    Raises:
        ValueError: If the address is empty or malformed
    """
    address = (address or "").strip()
    if not address:
        raise ValueError("Recipient email address is required")

    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> Optional[str]:
    """Build the 'From' address for outgoing emails.

    Uses SMTP_FROM when set, otherwise SMTP_USER. SMTP_SENDER_NAME, when
    set, is added as the display name.

    Returns:
        Formatted sender address (e.g. "Help Desk <helpdesk@example.com>"),
        or None when no from address is available
    """
    sender_email = env_config.from_address
    if not sender_email:
        return None

    if env_config.smtp_sender_name:
        return f"{env_config.smtp_sender_name} <{sender_email}>"
    return sender_email
