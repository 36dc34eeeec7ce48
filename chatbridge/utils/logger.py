"""
Structured Logging Module
=========================

structlog setup for the adapter layer.

chatbridge is a library: it never configures logging on import. The host
application calls ``setup_logging()`` once; until then structlog's defaults
apply and every module still logs through ``get_logger``.

Output:
    - debug: colored console lines with rich tracebacks
    - otherwise: one JSON object per line

Usage:
    from chatbridge.utils.logger import LogContext, get_logger

    logger = get_logger(__name__)
    with LogContext(request_id="abc123", provider="openai"):
        logger.info("Sending request", model="gpt-4o")
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor

from chatbridge import __version__
from chatbridge.config import LoggingSettings, get_settings

# Loggers of the HTTP and imaging stack, too chatty below WARNING
_NOISY_LOGGERS = ("aiohttp", "PIL")


def add_library_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every entry with the library name and version."""
    event_dict.setdefault("library", "chatbridge")
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderer(debug: bool) -> list[Processor]:
    if debug:
        return [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.rich_traceback,
            )
        ]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def setup_logging(settings: Optional[LoggingSettings] = None, stream: Optional[TextIO] = None) -> None:
    """
    Configure structured logging.

    Args:
        settings: Level and output mode; environment settings when None.
        stream: Destination of log lines; stdout when None.
    """
    settings = settings or get_settings().logging
    level = getattr(logging, settings.log_level)
    stream = stream or sys.stdout

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        add_library_context,
        *_renderer(settings.debug),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries log through the standard library
    logging.basicConfig(format="%(message)s", stream=stream, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically with ``__name__``."""
    return structlog.get_logger(name)


class LogContext:
    """
    Bind key-value pairs to every log entry inside a ``with`` block.

    Bindings live in context variables, so concurrent requests on the
    same event loop keep separate request ids.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)
