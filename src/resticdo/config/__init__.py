"""Configuration loading for restic-do."""

from .config_manager import (
    ConfigManager,
    NotificationSettings,
    ResticConfig,
    RetentionPolicy,
)

__all__ = [
    "ConfigManager",
    "NotificationSettings",
    "ResticConfig",
    "RetentionPolicy",
]
