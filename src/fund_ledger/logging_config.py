"""Structured logging configuration using structlog.

Development gets colored console output, production gets one JSON object
per line. Request and import identifiers are carried through contextvars so
every event emitted while serving a request or running an import batch can
be correlated.
"""

import logging
import sys
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

import structlog
from structlog.types import Processor

from fund_ledger.config import Settings, get_settings

_NOISY_LOGGERS = (
    "httpcore",
    "httpx",
    "multipart",
    "python_multipart",
    "uvicorn.access",
    "asyncio",
)


def _add_log_level(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def _add_app_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["environment"] = settings.environment.value
    return event_dict


def stringify_ledger_values(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Render amounts, ids, dates and enums as plain strings for JSON output."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, Decimal | UUID | date):
            event_dict[key] = str(value)
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def get_console_processors() -> list[Processor]:
    """Processors for human-readable development output."""
    return [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        *_shared_processors(),
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def get_json_processors() -> list[Processor]:
    """Processors for machine-readable production output."""
    return [
        _add_log_level,
        _add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        *_shared_processors(),
        stringify_ledger_values,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Call once at process start (API lifespan or CLI entry point).
    """
    if settings is None:
        settings = get_settings()

    log_level = getattr(logging, settings.log_level.value)

    if settings.log_format == "json":
        processors = get_json_processors()
    else:
        processors = get_console_processors()

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
        level=log_level,
    )

    if settings.log_file:
        _setup_file_handler(settings.log_file, log_level)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(log_level, logging.INFO))


def _setup_file_handler(log_file: Path, level: int) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Example:
        logger = get_logger(__name__)
        logger.info("journal_entry_posted", entry_id=str(entry.id), total="250.00")
    """
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind key/value pairs to every subsequent log call in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables from the logging context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for temporary log context binding.

    Example:
        with LogContext(import_id=str(job.id)):
            logger.info("import_started")
            ...
        # import_id is unbound again here
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs

    def __enter__(self) -> "LogContext":
        bind_context(**self.kwargs)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self.kwargs.keys())
