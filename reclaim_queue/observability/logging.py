"""
structlog setup for reclaim-queue processes.

Workers and the CLI call setup_logging() once at startup. Production renders
one JSON object per line; every other environment gets colored console
output. ReclaimWorker binds the queue name with bind_context() so each line
it emits carries it.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from reclaim_queue.config.settings import Settings, get_settings


def _renderer(settings: Settings) -> list[Processor]:
    if settings.is_production:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def setup_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    The log level and the renderer come from Settings (LOG_LEVEL,
    ENVIRONMENT). Standard library loggers such as the store layer's print
    plain messages to stdout at the same level.

    Usage:
        setup_logging()
        structlog.get_logger(__name__).info("Claimed", queue="jobs")
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        *_renderer(settings),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    # redis-py and asyncio are chatty at DEBUG
    for name in ("asyncio", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Attach key/value pairs to every log line emitted from this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop everything attached with bind_context()."""
    structlog.contextvars.clear_contextvars()
