"""structlog setup: one JSON object per line on stderr.

Every line carries ``ts`` (ISO, UTC), ``level``, the ``component`` of the
logger that wrote it and, when configured, the ``cluster_id``. Library
loggers (uvicorn, kubernetes_asyncio) go through stdlib logging and only
surface warnings and above.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def setup_logging(level: str = "info", cluster_id: str = "") -> None:
    """Configure structlog; unknown level names fall back to ``info``."""
    log_level = _LEVELS.get(level.strip().lower(), logging.INFO)

    structlog.configure(
        processors=_PROCESSORS,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(stream=sys.stderr, level=max(log_level, logging.WARNING), format="%(name)s %(message)s")

    structlog.contextvars.clear_contextvars()
    if cluster_id:
        structlog.contextvars.bind_contextvars(cluster_id=cluster_id)


def get_logger(component: str) -> FilteringBoundLogger:
    return cast(FilteringBoundLogger, structlog.get_logger(component=component))
