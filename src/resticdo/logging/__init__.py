"""restic-do Logging Module

Centralized logging configuration: severity-split console output, an optional
append-only log file and the custom SUCCESS level.
"""

from .logger_setup import SUCCESS, LoggingConfig, configure_logging

__all__ = ["SUCCESS", "LoggingConfig", "configure_logging"]
