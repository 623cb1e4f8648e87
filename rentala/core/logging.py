"""
Loguru setup shared by the API process, the background scheduler and the CLI.

Modules log snake_case event names with structured context:

    logger = get_logger(__name__)
    logger.bind(schedule_id=str(schedule.id)).info("report_delivered")
"""

import logging
import sys
from typing import Any

from loguru import logger

from rentala.config import get_settings

# stdlib loggers routed into loguru, with their floor outside debug mode
INTERCEPTED_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "apscheduler": logging.WARNING,
}

# Access lines from health checks and dashboard polling; shown only in debug mode
ROUTINE_MESSAGES = ("/health", "/api/jobs/")

DEBUG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | {extra}"
)
PLAIN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} | {message} | {extra}"

_configured = False


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the original caller."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(name=record.name).log(
            level, record.getMessage()
        )


def _drop_routine(record: dict[str, Any]) -> bool:
    message = record.get("message", "")
    return not any(marker in message for marker in ROUTINE_MESSAGES)


def setup_logging(debug: bool | None = None, force: bool = False) -> None:
    """
    Configure loguru once per process.

    Args:
        debug: Override settings.debug (the CLI passes --verbose here)
        force: Reconfigure even if logging was already set up
    """
    global _configured
    if _configured and not force:
        return

    if debug is None:
        debug = get_settings().debug

    logger.remove()
    logger.configure(extra={"name": "rentala"})

    if debug:
        logger.add(sys.stderr, level="DEBUG", format=DEBUG_FORMAT, backtrace=True, diagnose=True)
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format=PLAIN_FORMAT,
            filter=_drop_routine,
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, floor in INTERCEPTED_LOGGERS.items():
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(logging.DEBUG if debug else floor)

    _configured = True


def get_logger(name: str) -> Any:
    """Get a logger bound to a module name."""
    return logger.bind(name=name)
