"""
Structured logging configuration using structlog.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from shared.config import Settings, get_settings

# Third-party loggers that are chatty at INFO (connection churn, credential lookup).
_NOISY_LOGGERS = ("aio_pika", "aiormq", "botocore", "boto3", "s3transfer", "urllib3")


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the process."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LogContext:
    """
    Bind key/values to every log event inside the block.

    Context variables are task-local, so concurrent worker deliveries
    each carry their own job_id.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = {k: v for k, v in kwargs.items() if v is not None}
        self._tokens: Any = None

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.kwargs)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._tokens:
            structlog.contextvars.reset_contextvars(**self._tokens)
