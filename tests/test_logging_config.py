"""Tests for logging configuration and formatters."""

import io
import json
import logging

import pytest

from helpdesk_notify.logging import ComponentLoggerAdapter, get_logger
from helpdesk_notify.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from helpdesk_notify.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    """Create a test logger for building records."""
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()

    yield test_logger

    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    """Put the root logger back after configure_logging() replaced its handlers."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def key_value_formatter():
    return KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def test_json_formatter_basic(logger):
    """Test JSONFormatter produces valid JSON with mandatory fields."""
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["level"] == "INFO"
    assert log_obj["logger"] == "test"
    assert log_obj["message"] == "Test message"
    assert log_obj["timestamp"].endswith("Z")
    assert len(log_obj["timestamp"]) == 24  # 2026-01-02T03:04:05.123Z


def test_json_formatter_with_extra_fields(logger):
    """Test JSONFormatter includes extra fields and stringifies the rest."""
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Notification sent",
        (),
        None,
        extra={
            "event": "notification.dispatch.sent",
            "recipients": ["al@x", "jane@x"],
            "flag": True,
            "odd": object(),
        },
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "notification.dispatch.sent"
    assert log_obj["recipients"] == ["al@x", "jane@x"]
    assert log_obj["flag"] is True
    assert isinstance(log_obj["odd"], str)
    assert "name" not in log_obj


def test_contextual_filter_adds_static_and_context_fields(logger):
    """Test ContextualFilter stamps service, environment and context fields."""
    filter = ContextualFilter(service="helpdesk-notify", environment="test")

    with log_context(ticket_id=7, notification_event="opened"):
        record = logger.makeRecord("test", logging.INFO, "test.py", 1, "msg", (), None)
        filter.filter(record)

    assert record.service == "helpdesk-notify"
    assert record.environment == "test"
    assert record.ticket_id == 7
    assert record.notification_event == "opened"


def test_explicit_extra_wins_over_context(logger):
    """Test fields passed with extra= are not overwritten by the context."""
    filter = ContextualFilter()

    with log_context(ticket_id=7):
        record = logger.makeRecord(
            "test", logging.INFO, "test.py", 1, "msg", (), None, extra={"ticket_id": 8}
        )
        filter.filter(record)

    assert record.ticket_id == 8


def test_key_value_formatter_with_extras(logger):
    """Test KeyValueFormatter appends sorted key=value pairs."""
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Test message",
        (),
        None,
        extra={
            "event": "test.event",
            "count": 42,
            "ok": False,
            "error": None,
            "recipients": ["al@x", "jane@x"],
            "reason": "relay denied",
        },
    )

    output = key_value_formatter().format(record)

    assert "[INFO] test: Test message" in output
    assert "event=test.event" in output
    assert "count=42" in output
    assert "ok=false" in output
    assert "error=null" in output
    assert 'recipients="al@x,jane@x"' in output
    assert 'reason="relay denied"' in output


def test_key_value_formatter_skips_static_fields(logger):
    """Test service and environment are left off console output."""
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "msg", (), None)
    ContextualFilter(service="helpdesk-notify", environment="test").filter(record)

    output = key_value_formatter().format(record)

    assert "service=" not in output
    assert "environment=" not in output


def test_configure_logging_invalid_level():
    """Test configure_logging rejects invalid log level."""
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="INVALID")


def test_configure_logging_invalid_format():
    """Test configure_logging rejects invalid format type."""
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="invalid")


@pytest.mark.parametrize(
    "format_type, formatter_class",
    [("json", JSONFormatter), ("key-value", KeyValueFormatter)],
)
def test_configure_logging_formats(restore_root_logger, format_type, formatter_class):
    """Test configure_logging installs the requested formatter."""
    configure_logging(level="DEBUG", format_type=format_type, environment="test")

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, formatter_class)


def test_configure_logging_quiets_apscheduler(restore_root_logger):
    """Test the scheduler library is held at WARNING or above."""
    configure_logging(level="DEBUG")

    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_get_logger_with_component(caplog):
    """Test component loggers stamp the component and merge extras."""
    adapter = get_logger("helpdesk_notify.tests", component="dispatcher")

    with caplog.at_level(logging.INFO, logger="helpdesk_notify.tests"):
        adapter.info("hello", extra={"event": "test.event"})

    assert isinstance(adapter, ComponentLoggerAdapter)
    assert caplog.records[-1].component == "dispatcher"
    assert caplog.records[-1].event == "test.event"


def test_get_logger_without_component():
    """Test a plain logger is returned when no component is given."""
    assert isinstance(get_logger("helpdesk_notify.tests"), logging.Logger)


def test_configure_logging_writes_to_stream(restore_root_logger):
    """Test records are written as JSON lines to the given stream."""
    stream = io.StringIO()
    configure_logging(level="INFO", format_type="json", environment="test", stream=stream)

    with log_context(ticket_id=7):
        logging.getLogger("helpdesk_notify.tests").info("hello", extra={"event": "test.event"})

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines[0]["event"] == "logging.configured"
    assert lines[-1]["message"] == "hello"
    assert lines[-1]["ticket_id"] == 7
    assert lines[-1]["service"] == "helpdesk-notify"
