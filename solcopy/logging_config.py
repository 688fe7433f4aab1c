"""
Logging setup for the bot.

Every module logs through `logging.getLogger(__name__)`; structlog renders
those records as JSON lines (default) or colored console output, and adds
whatever context was bound with `event_context` (source signature, trade id).
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

import structlog

from .config import settings

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "websockets")


def _processors() -> List[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Route stdlib logging through structlog.

    Args:
        log_level: Override for settings.log_level
        log_format: "json" or "console", override for settings.log_format
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    fmt = (log_format or settings.log_format).lower()

    shared = _processors()
    if fmt == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        shared.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def event_context(**values: Any) -> Iterator[None]:
    """Bind key/values to every log line emitted inside the block (task-local)."""
    values = {k: v for k, v in values.items() if v is not None}
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
