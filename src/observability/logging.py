"""
Structured logging for creator-feed using structlog.

Both structlog loggers and the stdlib loggers used across the package
(logging.getLogger(__name__)) are rendered by one ProcessorFormatter on
the root handler, so every line gets a level, logger name, timestamp,
the active trace ids and any bound context such as the current pass
number. Production renders JSON, development a colored console.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from src.config.settings import get_settings
from src.observability.tracing import add_trace_context

# Loggers that are chatty at INFO (one line per HTTP request)
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Overrides settings.log_level; development mode and
            --debug pass "DEBUG"
    """
    settings = get_settings()
    level = level or settings.log_level

    # Applied to structlog events and to records from stdlib loggers alike
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        render_chain = [structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
        render_chain = [renderer]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared_processors,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *render_chain,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        handlers=[handler],
        level=getattr(logging, level),
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def pass_context(pass_number: int, **fields) -> Iterator[None]:
    """
    Bind pass_id (and any extra fields) for the duration of one
    aggregation pass.
    """
    structlog.contextvars.bind_contextvars(pass_id=pass_number, **fields)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("pass_id", *fields)
