"""Structured logging for Central Command.

Every log line is a structlog event rendered as JSON (or as console text
during development). Two kinds of context ride along automatically:

- ``correlation_id``: one id per poll cycle, set by ``begin_cycle``, so all
  the lines of one fetch/order/dispatch pass can be grouped.
- ``task_id`` / ``record_id`` / ``priority``: bound by ``work_item_context``
  for as long as one item is being dispatched.

Example:
    >>> from central_command.config import LoggingConfig
    >>> from central_command.logging import begin_cycle, get_logger, setup_logging
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> cycle_id = begin_cycle()
    >>> get_logger(__name__).info("pending_items_found", count=3)
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator
from uuid import uuid4

import structlog

from central_command.config import LoggingConfig

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_WORK_ITEM_KEYS = ("task_id", "record_id", "priority")

# Per-request INFO lines from the HTTP stack repeat every poll interval.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the current poll cycle id, if any."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def isoformat_datetimes(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor rendering datetime values (work item timestamps) as ISO 8601."""
    for key, value in event_dict.items():
        if isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set or clear the correlation id for the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def begin_cycle() -> str:
    """Start a new poll cycle context and return its correlation id."""
    cycle_id = f"cycle-{uuid4().hex[:12]}"
    _correlation_id.set(cycle_id)
    return cycle_id


def end_cycle() -> None:
    _correlation_id.set(None)


@contextmanager
def work_item_context(task_id: str, record_id: str, priority: str | None = None) -> Iterator[None]:
    """Bind the identifiers of the item being dispatched to every log line.

    Args:
        task_id: Human-facing task identifier
        record_id: Record store key of the item
        priority: Priority code (P0-P3), if known
    """
    context: dict[str, Any] = {"task_id": task_id, "record_id": record_id}
    if priority is not None:
        context["priority"] = priority
    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*_WORK_ITEM_KEYS)


def _build_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def setup_logging(config: LoggingConfig) -> None:
    """Route structlog events through one stdlib handler.

    The handler is a stdout stream, or a size-rotated file when
    ``config.file`` is set. HTTP client loggers are held at WARNING unless
    the level is DEBUG.

    Args:
        config: Logging section of CentralCommandConfig
    """
    log_level = getattr(logging, config.level)

    handler = _build_handler(config)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    chatty_level = logging.DEBUG if log_level == logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    renderer: Any
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            isoformat_datetimes,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
