"""Structured logging configuration using structlog.

JSON lines in production, colored console output in development. Entries
carry the request_id the HTTP middleware binds, so an escrow transition or
ledger entry can be traced back to the request that caused it.

Money amounts and ids are logged as plain strings ("98000.00", not
"Decimal('98000.00')") so log queries can match them against API payloads.

Usage:
    from authority_exchange.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=True)
    logger = get_logger(__name__)
    logger.info("escrow.created", transaction_id=tx.id, agreed_price=tx.agreed_price)
"""

from __future__ import annotations

import logging
import sys
import uuid
from decimal import Decimal
from typing import Any

import structlog

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "httpx", "asyncpg")


def stringify_values(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render Decimal and UUID values the way the API serializes them."""
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, uuid.UUID)):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Standard level name; unknown names fall back to INFO.
        json_logs: JSON lines when True, colored console otherwise.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        stringify_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
