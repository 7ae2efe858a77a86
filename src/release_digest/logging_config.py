"""Structured logging for the fetchers, the recap workflows and the API.

Every module logs through structlog with a snake_case event name plus
key/value context:

    logger.warning("source_config_missing", source="gitlab", field="token")
    logger.warning("github_rate_limited", repo="nimiq/core", reset_at="...")

Each line carries `service="release-digest"`. While a recap runs, its
workflow name and KV key are bound as context variables (`bind_workflow`),
so a fetcher warning raised on behalf of the weekly summary can be told
apart from one raised by an API request. asyncio tasks started inside the
block (the aggregator's fan-out) inherit the binding.

In production the output is one JSON object per line; in development the
console renderer keeps it readable. httpx request lines are only shown at
DEBUG, since one aggregation issues dozens of requests.

Usage:
    from release_digest.logging_config import bind_workflow, get_logger, setup_logging

    setup_logging(environment="production")
    logger = get_logger(__name__)
    with bind_workflow("weekly_summary", kv_key="weekly-summary-2024-19"):
        logger.info("weekly_summary_started")
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

SERVICE_NAME = "release-digest"
QUIET_LOGGERS = ("httpx", "httpcore")


def add_service_name(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        environment: "development" or "production". Reads from the
                     ENVIRONMENT env var if not provided.
        log_level: DEBUG, INFO, WARNING or ERROR. Reads from the LOG_LEVEL
                   env var if not provided; unknown names mean INFO.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = _resolve_level(log_level or os.environ.get("LOG_LEVEL", "INFO"))

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx and uvicorn log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def bind_workflow(name: str, **context: Any) -> Iterator[None]:
    """Bind `workflow=name` and extra context to every log line in the block."""
    with structlog.contextvars.bound_contextvars(workflow=name, **context):
        yield


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
