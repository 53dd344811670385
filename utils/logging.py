"""
Logging utilities for the TON swap watcher
"""

import structlog
import logging
import sys

# Per-request access lines would drown the swap records
_NOISY_LOGGERS = ("uvicorn.access", "aiohttp.access")


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for the watcher.

    Fields bound with ``bind_unit_context`` are merged into every event
    logged from the same task, so all lines of one swap carry its ``lt``.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
    ]

    if log_format.lower() == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    # uvicorn and aiohttp log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    sys.stdout.flush()


def bind_unit_context(**fields) -> None:
    """Bind fields to every event logged by the current task."""
    structlog.contextvars.bind_contextvars(**fields)
