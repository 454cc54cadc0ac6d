"""Logging setup for the LockPilot daemon.

Everything logs under the ``lockpilot`` logger. The daemon writes to stdout
(collected by launchd) and to two rotating files in ``<home>/logs``: the full
log and an errors-only log.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

from .config import LockPilotConfig

ROOT_LOGGER = "lockpilot"
MAIN_LOG = "lockpilot.log"
ERROR_LOG = "lockpilot.errors.log"


class StructuredFormatter(logging.Formatter):
    """``[time] [LEVEL] [logger] [key=value ...] message``"""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{self.formatTime(record)}]",
            f"[{record.levelname}]",
            f"[{record.name}]",
        ]

        context = getattr(record, "context", None)
        if context:
            parts.append("[" + " ".join(f"{k}={v}" for k, v in context.items()) + "]")

        parts.append(record.getMessage())
        line = " ".join(parts)

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextFilter(logging.Filter):
    """Makes sure every record has a ``context`` dict, merging in fixed fields."""

    def __init__(self, **fields: Any):
        super().__init__()
        self.fields = fields

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = {}
        for key, value in self.fields.items():
            record.context.setdefault(key, value)
        return True


def _rotating_file(path: Path, config: LockPilotConfig) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )


def setup_logging(config: LockPilotConfig) -> logging.Logger:
    """Configure the ``lockpilot`` logger from the daemon configuration.

    Safe to call more than once: handlers from a previous call are closed
    and replaced.

    Args:
        config: Supplies the log level, the log directory and rotation sizes

    Returns:
        The ``lockpilot`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    config.log_dir.mkdir(parents=True, exist_ok=True)

    error_file = _rotating_file(config.log_dir / ERROR_LOG, config)
    error_file.setLevel(logging.ERROR)

    formatter = StructuredFormatter()
    # Filters on a logger do not see records from child loggers
    context_filter = ContextFilter()
    for handler in (
        logging.StreamHandler(sys.stdout),
        _rotating_file(config.log_dir / MAIN_LOG, config),
        error_file,
    ):
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        logger.addHandler(handler)

    return logger


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log ``message`` with ``context`` rendered as key=value fields."""
    logger.log(level, message, extra={"context": context})
