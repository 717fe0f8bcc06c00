"""Structured logging — structlog events routed through stdlib handlers.

:func:`setup_logging` is called once by the CLI.  Library code only does
``structlog.get_logger(__name__)`` and emits snake_case event names with
keyword fields.

Every event carries a UTC timestamp, the level, the logger name and any
values bound with :func:`bind_pass_context` (the coordinator binds ``pass_id`` for
the duration of a reconciliation pass, so events from concurrent file
workers can be grouped).  Third-party libraries that log through
:mod:`logging` (httpx) go through the same pipeline.
"""
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncio")


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _handler(stream_or_path: Any, renderer: Any) -> logging.Handler:
    if isinstance(stream_or_path, str):
        handler: logging.Handler = logging.FileHandler(stream_or_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream_or_path)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=_pre_chain(),
        )
    )
    return handler


def setup_logging(level: str = "info", json_output: bool = False, log_file: str | None = None) -> None:
    """Configure structlog and the root logger.

    Args:
        level: ``debug``, ``info``, ``warning``, ``error`` or ``critical``.
        json_output: Render stderr lines as JSON instead of the console format.
        log_file: Also append JSON lines to this file.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_output:
        console_renderer: Any = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    handlers = [_handler(sys.stderr, console_renderer)]
    if log_file:
        handlers.append(_handler(log_file, structlog.processors.JSONRenderer()))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        root.addHandler(handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).debug(
        "logging_configured",
        level=level,
        json_output=json_output,
        log_file=log_file,
    )


@contextmanager
def bind_pass_context(**values: Any) -> Iterator[None]:
    """Bind ``values`` (e.g. ``pass_id``) to every event logged inside the block."""
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = ["bind_pass_context", "setup_logging"]
