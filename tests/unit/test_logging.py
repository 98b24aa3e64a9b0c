"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from io import StringIO
from pathlib import Path

import pytest
import structlog

from central_command.config import LoggingConfig
from central_command.logging import (
    add_correlation_id,
    begin_cycle,
    end_cycle,
    get_correlation_id,
    get_logger,
    isoformat_datetimes,
    set_correlation_id,
    setup_logging,
    work_item_context,
)


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Reset logging configuration before each test."""
    root = logging.getLogger()
    root.handlers.clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    set_correlation_id(None)


@pytest.fixture
def capture_stream() -> StringIO:
    return StringIO()


@pytest.fixture
def json_config() -> LoggingConfig:
    return LoggingConfig(level="INFO", format="json", file=None)


def _capture(stream: StringIO) -> None:
    root = logging.getLogger()
    root.handlers[0].stream = stream


def test_json_output_format(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that JSON format produces valid JSON output."""
    setup_logging(json_config)
    _capture(capture_stream)

    logger = get_logger("test.module")
    logger.info("work_item_routed", agent="claude", priority="P0")

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["event"] == "work_item_routed"
    assert log_entry["agent"] == "claude"
    assert log_entry["priority"] == "P0"
    assert log_entry["level"] == "info"
    assert log_entry["logger"] == "test.module"
    assert "timestamp" in log_entry


def test_console_output_format(capture_stream: StringIO) -> None:
    """Test that console format produces human-readable output."""
    setup_logging(LoggingConfig(level="DEBUG", format="console"))
    _capture(capture_stream)

    get_logger("test.module").debug("poller_starting", poll_interval=30)

    output = capture_stream.getvalue()
    assert "poller_starting" in output
    assert "poll_interval" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output.strip())


def test_log_level_filtering(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that DEBUG is filtered at INFO level."""
    setup_logging(json_config)
    _capture(capture_stream)

    logger = get_logger("test.module")
    logger.debug("debug_message")
    assert capture_stream.getvalue() == ""

    logger.info("info_message")
    assert "info_message" in capture_stream.getvalue()


def test_cycle_correlation_id(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that every line of a poll cycle carries the cycle id."""
    setup_logging(json_config)
    _capture(capture_stream)
    logger = get_logger("test.module")

    cycle_id = begin_cycle()
    assert cycle_id.startswith("cycle-")
    assert get_correlation_id() == cycle_id
    logger.info("pending_items_found")
    first = json.loads(capture_stream.getvalue().strip().splitlines()[-1])
    assert first["correlation_id"] == cycle_id

    end_cycle()
    logger.info("no_pending_items")
    second = json.loads(capture_stream.getvalue().strip().splitlines()[-1])
    assert "correlation_id" not in second


def test_each_cycle_gets_a_new_id() -> None:
    assert begin_cycle() != begin_cycle()


def test_add_correlation_id_processor_without_id() -> None:
    """Test the processor leaves the event untouched when no ID is set."""
    event = {"event": "x"}
    assert add_correlation_id(None, "info", event) == {"event": "x"}


def test_isoformat_datetimes_processor() -> None:
    stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    event = isoformat_datetimes(None, "info", {"event": "task_transition", "completed_at": stamp})
    assert event["completed_at"] == "2026-03-01T12:00:00+00:00"


def test_work_item_context(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that work item identifiers are bound inside the block only."""
    setup_logging(json_config)
    _capture(capture_stream)
    logger = get_logger("test.module")

    with work_item_context("T-1", "rec001", "P0"):
        logger.info("work_item_processing")
        bound = json.loads(capture_stream.getvalue().strip().splitlines()[-1])

    logger.info("no_pending_items")
    cleared = json.loads(capture_stream.getvalue().strip().splitlines()[-1])

    assert bound["task_id"] == "T-1"
    assert bound["record_id"] == "rec001"
    assert bound["priority"] == "P0"
    for key in ("task_id", "record_id", "priority"):
        assert key not in cleared


def test_work_item_context_unbinds_on_error() -> None:
    with pytest.raises(RuntimeError):
        with work_item_context("T-1", "rec001"):
            raise RuntimeError("dispatch failed")

    assert "task_id" not in structlog.contextvars.get_contextvars()


def test_http_loggers_quieted_unless_debug(json_config: LoggingConfig) -> None:
    setup_logging(json_config)
    assert logging.getLogger("httpx").level == logging.WARNING

    setup_logging(LoggingConfig(level="DEBUG", format="json"))
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_file_handler_with_rotation(tmp_path: Path) -> None:
    """Test that a log file configures a rotating handler."""
    log_file = tmp_path / "logs" / "central-command.log"
    setup_logging(
        LoggingConfig(level="INFO", format="json", file=log_file, rotation_size_mb=2, retention_count=3)
    )

    handler = logging.getLogger().handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 2 * 1024 * 1024
    assert handler.backupCount == 3

    get_logger("test.module").info("file_event")
    handler.flush()
    assert "file_event" in log_file.read_text()
