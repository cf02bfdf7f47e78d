"""
Structured logging configuration using structlog.

Orchestration code logs through structlog with bound fields (item_id,
subscription_id, channel); pure components use stdlib loggers, which are
routed to the same stdout stream.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from msgbot.config.settings import get_settings

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ("asyncio", "redis")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for msgbot.

    Production renders JSON lines; anything else gets coloured console
    output.

    Args:
        level: Overrides LOG_LEVEL (the CLI passes DEBUG for --debug).
    """
    settings = get_settings()
    log_level = (level or settings.log_level).upper()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

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
        level=getattr(logging, log_level),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**fields) -> Iterator[None]:
    """
    Bind fields to every structlog message emitted inside the block.

    Fields bound by the caller before entering are restored on exit, so
    nested scopes (worker batch, then item) compose.

    Usage:
        with log_context(item_id=item.item_id):
            logger.info("Item processed", matches=3)
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield
