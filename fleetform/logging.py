"""Fleetform — Structured logging configuration.

Uses structlog for structured, levelled logging with consistent key names
across all layers.  All log entries include:
    - timestamp (ISO-8601)
    - level
    - logger (Python logger name)
    - run_id / task_key (bound via context variables when available)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from fleetform.config import LoggingConfig, get_settings

# Context variables — automatically injected into log records when set.
# Each worker runs in its own asyncio task, so task_key never leaks between
# concurrently rendered tasks.
_ctx_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
_ctx_task_key: ContextVar[str | None] = ContextVar("task_key", default=None)


def bind_run_context(run_id: str | None = None, task_key: str | None = None) -> None:
    """Bind execution context to the current async task / thread."""
    if run_id is not None:
        _ctx_run_id.set(run_id)
    if task_key is not None:
        _ctx_task_key.set(task_key)


def clear_run_context() -> None:
    _ctx_run_id.set(None)
    _ctx_task_key.set(None)


@contextmanager
def run_context(run_id: str) -> Iterator[None]:
    """Bind *run_id* for the duration of the block, then restore the previous value."""
    token = _ctx_run_id.set(run_id)
    try:
        yield
    finally:
        _ctx_run_id.reset(token)


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Add ContextVar values to every log record."""
    if (run_id := _ctx_run_id.get()) is not None:
        event_dict.setdefault("run_id", run_id)
    if (task_key := _ctx_task_key.get()) is not None:
        event_dict.setdefault("task_key", task_key)
    return event_dict


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Call once at startup, before any log statements.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stdout.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("run_started", run_id="abc123", task_count=5)
    """
    return structlog.get_logger(name)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging from ``Settings.logging`` (or an explicit *config*)."""
    config = config or get_settings().logging
    configure_logging(
        level=config.level,
        format=config.format,
        log_file=str(config.file) if config.file else None,
    )
