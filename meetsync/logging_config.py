"""
Logging for meetsync: structlog events routed through stdlib logging.

Every event carries the request context bound by the API middleware
(request_id, user_id) and never carries raw OAuth secrets.

Environment:
    MEETSYNC_LOG_LEVEL   DEBUG / INFO / WARNING ... (default INFO)
    MEETSYNC_LOG_FORMAT  "json" for one JSON object per line, console otherwise

Usage:
    from meetsync.logging_config import bind_request_context, get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)

    bind_request_context(request_id="3f2a...", user_id=user.id)
    logger.info("busy_fetched", intervals=4)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

# Event keys whose values are credentials
SECRET_KEYS = frozenset({"access_token", "refresh_token", "client_secret", "authorization"})

# Chatty third-party loggers held at WARNING
QUIET_LOGGERS = ("aiohttp.access", "httpx", "uvicorn.access")


def mask_secrets(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Replace credential values with a short fingerprint."""
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = f"***{str(value)[-4:]}"
    return event_dict


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get("MEETSYNC_LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("MEETSYNC_LOG_FORMAT", "").lower() == "json"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain gives uvicorn/aiohttp records the same timestamp and level fields
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, user_id: str | None = None) -> None:
    """Attach request_id (and the acting user, when known) to every event in this context."""
    structlog.contextvars.clear_contextvars()
    context = {"request_id": request_id}
    if user_id:
        context["user_id"] = user_id
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "bind_request_context",
    "clear_request_context",
    "get_logger",
    "mask_secrets",
    "setup_logging",
]
