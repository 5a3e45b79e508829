"""
Structured logging configuration using structlog.

JSON logs in production, colored console logs in development. Services
bind key/value fields (source_id, item_id) instead of formatting them
into the message. A cycle binds its number and each worker binds the
source it is processing, so every line emitted underneath (feed client,
enrichment, caches) carries both without threading them through calls.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from feed_curator.config.settings import get_settings
from feed_curator.ingestion.item_id import InvalidItemIdError, watch_url

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "feedparser")


def add_watch_url(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Attach a clickable watch URL to any event carrying a full item_id."""
    item_id = event_dict.get("item_id")
    if not isinstance(item_id, str) or "link" in event_dict or "url" in event_dict:
        return event_dict
    try:
        event_dict["url"] = watch_url(item_id)
    except InvalidItemIdError:
        event_dict["item_id_valid"] = False
    return event_dict


def resolve_log_level(level: str | None = None) -> str:
    """Explicit level wins, then DEBUG when settings.debug is on, then LOG_LEVEL."""
    if level:
        return level.upper()
    settings = get_settings()
    return "DEBUG" if settings.debug else settings.log_level


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Override for the configured log level (e.g. from --debug)

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Source processed", source_id="UC123", surfaced=True)
    """
    settings = get_settings()
    log_level = resolve_log_level(level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_watch_url,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
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
        level=getattr(logging, log_level),
    )
    # basicConfig is a no-op once handlers exist, the level must still apply
    logging.getLogger().setLevel(getattr(logging, log_level))

    # Retry warnings from feed fetches stay visible; transport chatter does not
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**fields) -> Iterator[None]:
    """
    Bind fields (cycle, source_id) to every log line emitted inside the block.

    Bindings are contextvars, so tasks created inside the block inherit
    them and sibling worker tasks never see each other's source_id.
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield
