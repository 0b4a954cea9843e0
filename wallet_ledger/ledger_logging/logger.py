"""
Structured logging for the ledger: one JSON object per line.

Every record carries timestamp, level, logger and event_type. Modules call
get_logger(__name__) and log snake_case events with keyword fields; addresses
and signatures go through short(). log_context() binds fields (run_id,
wallet_id) to every record emitted inside a block, across modules.

No wallet_ledger imports here; everything else imports this module.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog


def _rename_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's 'event' key becomes event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    (Re)configure structlog. Defaults come from LOG_LEVEL (INFO) and
    LOG_FORMAT (json; anything else selects the console renderer).
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    fmt = (fmt or os.getenv("LOG_FORMAT") or "json").strip().lower()
    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _rename_event,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for one module:

        logger = get_logger(__name__)
        logger.info("page_fetched", wallet_id=short(addr), signature_count=20)
    """
    return structlog.get_logger(name).bind(logger=name)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind fields to every record logged in this thread until the block exits."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def short(value: str | None, width: int = 16) -> str:
    """Shorten an address or signature for log fields."""
    if not value:
        return ""
    return value[:width] + "..." if len(value) > width else value
