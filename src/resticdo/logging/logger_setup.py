"""Logging configuration and setup utilities for restic-do.

Console output is split by severity: informational records go to stdout and
errors to stderr, so restic's own output and ours interleave the way a shell
user expects. An optional append-only log file mirrors everything.
"""

import logging
import logging.config
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggerConfigError(Exception):
    """Custom exception for logger configuration errors."""


@dataclass
class LoggingConfig:
    """Configuration for logging setup."""

    log_name: str
    log_file: Path | None = None
    log_level: str = "INFO"
    max_bytes: int = 5 * 1024 * 1024  # 5 MB
    backup_count: int = 3
    enable_console: bool = True


class MaxLevelFilter(logging.Filter):
    """Let through only records strictly below a given level."""

    def __init__(self, max_level: int | str) -> None:
        """Initialize the filter with the exclusive upper level."""
        super().__init__()
        self.max_level = (
            validate_log_level(max_level) if isinstance(max_level, str) else max_level
        )

    def filter(self, record: logging.LogRecord) -> bool:
        """Return True for records below the configured level."""
        return record.levelno < self.max_level


def validate_log_level(log_level: str) -> int:
    """Validate and return the numeric log level."""
    numeric_level = logging.getLevelName(log_level.upper())
    if not isinstance(numeric_level, int):
        error_msg = f"Invalid log level: {log_level}"
        raise LoggerConfigError(error_msg)
    return numeric_level


def create_logging_config(config: LoggingConfig) -> dict[str, Any]:
    """Create logging configuration dictionary."""
    numeric_level = validate_log_level(config.log_level)

    formatters = {
        "standard": {
            "format": LOG_FORMAT,
            "datefmt": DATE_FORMAT,
        },
    }

    filters = {
        "below_error": {
            "()": MaxLevelFilter,
            "max_level": logging.ERROR,
        },
    }

    handlers: dict[str, dict[str, Any]] = {}

    if config.enable_console:
        handlers["stdout_handler"] = {
            "level": numeric_level,
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "filters": ["below_error"],
            "stream": "ext://sys.stdout",
        }
        handlers["stderr_handler"] = {
            "level": max(numeric_level, logging.ERROR),
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "stream": "ext://sys.stderr",
        }

    if config.log_file is not None:
        handlers["file_handler"] = {
            "level": numeric_level,
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(config.log_file),
            "mode": "a",
            "maxBytes": config.max_bytes,
            "backupCount": config.backup_count,
            "formatter": "standard",
            "encoding": "utf8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            config.log_name: {
                "handlers": list(handlers.keys()),
                "level": numeric_level,
                "propagate": False,
            },
        },
    }


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Configure logging for the application.

    Args:
        config: Logging configuration object

    Returns:
        Configured logger instance

    """
    try:
        logging_config = create_logging_config(config)
        logging.config.dictConfig(logging_config)
        logger = logging.getLogger(config.log_name)
        logger.debug(
            f"Logging configured for '{config.log_name}' at level {config.log_level}",
        )

    except (LoggerConfigError, ValueError, KeyError):
        # Fallback to basic console logging if configuration fails
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)
        logger = logging.getLogger(config.log_name)
        logger.exception("Failed to configure logging. Using fallback configuration.")

    return logger
