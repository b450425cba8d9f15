"""Command line entry point for the help-desk notification engine."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from helpdesk_notify.config.environment import EnvironmentConfig
from helpdesk_notify.config.exceptions import ConfigurationError
from helpdesk_notify.config.loader import load_config
from helpdesk_notify.config.models import AppConfig
from helpdesk_notify.domain.models import LifecycleEvent, TicketSnapshot, UserRecord
from helpdesk_notify.logging import get_logger
from helpdesk_notify.logging.config import configure_logging
from helpdesk_notify.logging.context import log_context
from helpdesk_notify.notifications.events import classify
from helpdesk_notify.notifications.models import (
    DispatchResult,
    InvalidNotificationSettingsError,
    MailTransportNotConfiguredError,
    SMTPDeliveryError,
)
from helpdesk_notify.notifications.policy import NotificationPolicyStore
from helpdesk_notify.notifications.service import NotificationService
from helpdesk_notify.persistence.database import close_database, get_session, init_database
from helpdesk_notify.persistence.exceptions import PersistenceError
from helpdesk_notify.persistence.repositories import UserRepository
from helpdesk_notify.scheduler import BackgroundDispatcher

logger = get_logger(__name__, component="cli")

CommandHandler = Callable[[argparse.Namespace, AppConfig, EnvironmentConfig], int]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and prepare runtime configuration.

    Args:
        config_path: Path to configuration file (None searches the defaults)
        log_level_override: Log level from CLI (takes precedence)

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with the effective log level
        stored on the environment config

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    # Log level priority: CLI > Environment > Config > INFO
    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def read_document(path: Path) -> Any:
    """Read a YAML or JSON document from disk.

    Raises:
        ConfigurationError: If the file is missing or cannot be parsed
    """
    if not path.exists():
        raise ConfigurationError(f"File not found: {path}")

    try:
        with open(path, "r") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse {path}: {e}",
            suggestions=["Check the file is valid YAML or JSON"],
        ) from e


def read_ticket(path: Path) -> TicketSnapshot:
    """Load a ticket snapshot from a YAML or JSON file."""
    try:
        return TicketSnapshot.model_validate(read_document(path))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid ticket document {path}",
            errors=[f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e


def build_user_records(entries: Any) -> List[UserRecord]:
    """Convert a list of user mappings into UserRecords.

    ``id`` defaults to the username; numeric ids are stored as text.
    """
    if not isinstance(entries, list):
        raise ConfigurationError(
            "User file must contain a list of users",
            suggestions=["Use a top-level YAML/JSON list of {username, role, email, ...}"],
        )

    users = []
    errors = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"[{index}]: expected a mapping, got {type(entry).__name__}")
            continue
        data = dict(entry)
        data["id"] = str(data.get("id") or data.get("username") or "")
        try:
            users.append(UserRecord.model_validate(data))
        except ValidationError as e:
            for err in e.errors():
                errors.append(f"[{index}].{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")

    if errors:
        raise ConfigurationError("Invalid user list", errors=errors)

    return users


def cmd_init_db(args, app_config, env_config) -> int:
    NotificationPolicyStore().get_matrix()
    print(f"Database ready: {env_config.database_url}")
    return 0


def cmd_show_settings(args, app_config, env_config) -> int:
    store = NotificationPolicyStore()
    settings = {"matrix": store.get_matrix(), "templates": store.get_templates()}
    print(json.dumps(settings, indent=2, sort_keys=True))
    return 0


def cmd_set_matrix(args, app_config, env_config) -> int:
    NotificationPolicyStore().replace_matrix(read_document(args.file), actor=args.actor)
    print("Notification matrix replaced")
    return 0


def cmd_set_templates(args, app_config, env_config) -> int:
    NotificationPolicyStore().replace_templates(read_document(args.file), actor=args.actor)
    print("Notification templates replaced")
    return 0


def cmd_import_users(args, app_config, env_config) -> int:
    users = build_user_records(read_document(args.file))
    with get_session() as session:
        repo = UserRepository(session)
        for user in users:
            repo.upsert(user)

    logger.info(
        f"Imported {len(users)} user(s)",
        extra={"event": "users.imported", "user_count": len(users)},
    )
    print(f"Imported {len(users)} user(s)")
    return 0


def cmd_send_test(args, app_config, env_config) -> int:
    service = NotificationService(env_config, app_config.email)
    try:
        recipient = service.send_test_email(args.to)
    except MailTransportNotConfiguredError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except SMTPDeliveryError as e:
        print(f"Failed to send test email: {e}", file=sys.stderr)
        return 1

    print(f"Test email sent to {recipient}")
    return 0


def cmd_notify(args, app_config, env_config) -> int:
    ticket = read_ticket(args.ticket)
    extra: Dict[str, str] = {}

    if args.comment is not None:
        events = [LifecycleEvent.COMMENTED]
        extra["comment"] = args.comment.strip()
    else:
        previous = read_ticket(args.previous) if args.previous else None
        events = classify(previous, ticket)

    if not events:
        print(f"Ticket {ticket.id}: no notification events")
        return 0

    service = NotificationService(env_config, app_config.email)
    results: Dict[LifecycleEvent, DispatchResult] = {}

    def run(event: LifecycleEvent) -> None:
        results[event] = service.dispatch(event, ticket, args.actor, extra or None)

    # Events of one mutation are independent; wait for all before reporting
    dispatcher = BackgroundDispatcher(max_workers=app_config.dispatch.max_workers)
    dispatcher.start()
    try:
        for event in events:
            dispatcher.submit(run, event)
        dispatcher.join()
    finally:
        dispatcher.shutdown(wait=True)

    failed = False
    for event in events:
        result = results[event]
        recipients = ", ".join(result.recipients) or "-"
        line = f"Ticket {result.ticket_id} {result.event}: {result.status} (recipients: {recipients})"
        if result.error:
            line += f" error: {result.error}"
        print(line)
        failed = failed or result.status == "failed"

    return 1 if failed else 0


COMMANDS: Dict[str, CommandHandler] = {
    "init-db": cmd_init_db,
    "show-settings": cmd_show_settings,
    "set-matrix": cmd_set_matrix,
    "set-templates": cmd_set_templates,
    "import-users": cmd_import_users,
    "send-test": cmd_send_test,
    "notify": cmd_notify,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helpdesk-notify",
        description="Help Desk notification engine - ticket lifecycle email routing",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create tables and the default notification settings")
    subparsers.add_parser("show-settings", help="Print the effective matrix and templates as JSON")

    for name, what in (("set-matrix", "notification matrix"), ("set-templates", "notification templates")):
        sub = subparsers.add_parser(name, help=f"Replace the {what} from a YAML/JSON file")
        sub.add_argument("file", type=Path, help="Document to store")
        sub.add_argument("--actor", default=None, help="Administrator recorded as the author")

    sub = subparsers.add_parser("import-users", help="Insert or update users from a YAML/JSON list")
    sub.add_argument("file", type=Path, help="List of users")

    sub = subparsers.add_parser("send-test", help="Send the SMTP test email")
    sub.add_argument("--to", required=True, help="Destination address")

    sub = subparsers.add_parser("notify", help="Classify a ticket change and send notifications")
    sub.add_argument("--ticket", type=Path, required=True, help="Ticket after the change")
    sub.add_argument("--previous", type=Path, default=None, help="Ticket before the change")
    sub.add_argument("--actor", default=None, help="Who made the change")
    sub.add_argument("--comment", default=None, help="Fire a comment notification with this text")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the helpdesk-notify CLI.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", "local"),
        )

        init_database(env_config.database_url)

        with log_context(command=args.command):
            logger.info(
                f"Running {args.command}",
                extra={
                    "event": "cli.command.starting",
                    "mail_enabled": env_config.mail_enabled,
                },
            )
            exit_code = COMMANDS[args.command](args, app_config, env_config)
            logger.info(
                f"{args.command} finished",
                extra={
                    "event": "cli.command.completed",
                    "exit_code": exit_code,
                    "duration_seconds": round(time.time() - start_time, 3),
                },
            )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except (InvalidNotificationSettingsError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PersistenceError as e:
        print(f"Database error: {e}", file=sys.stderr)
        logger.error(
            f"Database error: {e}",
            extra={"event": "cli.command.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "cli.command.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        close_database()


if __name__ == "__main__":
    sys.exit(main())
