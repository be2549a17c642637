"""
Logging Configuration for Retail Reporting Pipelines

Structured logging through the stdlib logging tree. Batch runs render JSON
lines; local runs render console output. Every line logged while a report is
building carries the report name and as-of date via ``report_context``.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional, Union

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from src.config.settings import Settings, get_settings

# Libraries that log per-request detail at DEBUG
NOISY_LOGGERS = ("prefect", "httpx", "faker")


def _shared_processors() -> List:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _handler(handler: logging.Handler, renderer, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors()))
    return handler


def configure_logging(log_level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for report runs.

    Args:
        log_level: Override of ``LOG_LEVEL`` (DEBUG, INFO, WARNING, ERROR)
        settings: Settings to read the format and log file from
    """
    settings = settings or get_settings()
    monitoring = settings.monitoring
    level_name = (log_level or monitoring.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    structlog.configure(
        processors=_shared_processors() + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    # Report tables may go to stdout, so log lines go to stderr
    root.addHandler(_handler(logging.StreamHandler(sys.stderr), renderer, level))
    if monitoring.log_file:
        root.addHandler(_handler(logging.FileHandler(monitoring.log_file), JSONRenderer(), level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    structlog.get_logger(__name__).debug(
        "Logging configured",
        level=level_name,
        format=monitoring.log_format,
        environment=settings.app_env,
    )


@contextmanager
def report_context(report: str, as_of: Union[date, str]) -> Iterator[None]:
    """Bind the report name and as-of date to every log line inside the block."""
    with structlog.contextvars.bound_contextvars(report=report, as_of=str(as_of)):
        yield
