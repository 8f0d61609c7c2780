"""
Structured logging configuration using loguru and structlog.

Library modules log through ``from loguru import logger``; entry points
(the discovery job, scripts) call :func:`configure_logging` once at start-up.
Per-restaurant work runs inside :func:`restaurant_context` so every line
emitted while processing a restaurant carries its id.
"""

import sys
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from pathlib import Path

from loguru import logger
import structlog
from structlog.typing import EventDict, WrappedLogger

from covercast.config import settings, Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra[restaurant_id]} | "
    "<level>{message}</level>"
)

# Loggers from libraries that are chatty at INFO
QUIET_LOGGERS = ("urllib3", "apscheduler", "tenacity")


class SecretFilter:
    """Redact provider credentials (OpenWeather appid, Ticketmaster apikey) from structured events."""

    SECRET_FIELDS = ("api_key", "apikey", "appid", "token", "secret", "password", "authorization")

    def __call__(self, logger: WrappedLogger, name: str, event_dict: EventDict) -> EventDict:
        for key in list(event_dict.keys()):
            if any(field in key.lower() for field in self.SECRET_FIELDS):
                event_dict[key] = "[REDACTED]"
        return event_dict


class InterceptHandler(logging.Handler):
    """
    Route standard-library logging through loguru.

    requests/urllib3, apscheduler and SQLAlchemy all log through the stdlib.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _add_sinks(config: Settings) -> None:
    serialize = config.log_format == "json"
    log_format = "{message}" if serialize else CONSOLE_FORMAT

    logger.add(
        sys.stderr,
        format=log_format,
        level=config.log_level,
        serialize=serialize,
        backtrace=True,
        diagnose=config.is_development,
    )

    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.log_file,
            format=log_format,
            level=config.log_level,
            serialize=serialize,
            rotation="50 MB",
            retention="30 days",
            compression="zip",
            enqueue=True,
        )


def configure_logging(config: Settings = settings) -> None:
    """Configure loguru sinks, structlog processors and stdlib interception."""
    logger.remove()
    logger.configure(extra={"restaurant_id": "-"})
    _add_sinks(config)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        SecretFilter(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if config.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(config.log_level)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if config.debug else logging.WARNING)

    logger.info(f"Logging configured (level={config.log_level}, format={config.log_format}, env={config.app_env})")


@contextmanager
def restaurant_context(restaurant_id: Optional[int]) -> Iterator[None]:
    """Tag loguru and structlog output emitted inside the block with ``restaurant_id``."""
    with logger.contextualize(restaurant_id=restaurant_id):
        with structlog.contextvars.bound_contextvars(restaurant_id=restaurant_id):
            yield


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
