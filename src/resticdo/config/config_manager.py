"""Configuration management for restic-do."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from resticdo.exceptions import (
    EnvFileNotFoundError,
    EnvFileUnreadableError,
    InvalidRetentionValueError,
    MissingRequiredSettingError,
)

REQUIRED_SETTINGS = ("RESTIC_REPO", "RESTIC_PASSWORD")

RETENTION_SETTINGS = {
    "keep_last": "RESTIC_REPO_KEEP_LAST",
    "keep_daily": "RESTIC_REPO_KEEP_DAILY",
    "keep_weekly": "RESTIC_REPO_KEEP_WEEKLY",
    "keep_monthly": "RESTIC_REPO_KEEP_MONTHLY",
    "keep_yearly": "RESTIC_REPO_KEEP_YEARLY",
}

DEFAULT_SOURCE_TYPE = "dir"
DEFAULT_RESTIC_BINARY = "restic"

_RETENTION_VALUE = re.compile(r"[0-9]+")


@dataclass
class RetentionPolicy:
    """Snapshot counts kept by a forget pass."""

    keep_last: int | None = None
    keep_daily: int | None = None
    keep_weekly: int | None = None
    keep_monthly: int | None = None
    keep_yearly: int | None = None

    @classmethod
    def from_settings(cls, settings: dict[str, str]) -> "RetentionPolicy":
        """Build a policy from raw settings, rejecting malformed counts.

        Raises:
            InvalidRetentionValueError: If a count is not a non-negative integer

        """
        values: dict[str, int | None] = {}
        for attribute, key in RETENTION_SETTINGS.items():
            raw = settings.get(key, "")
            if not raw:
                values[attribute] = None
                continue
            if not _RETENTION_VALUE.fullmatch(raw):
                raise InvalidRetentionValueError(key, raw)
            values[attribute] = int(raw)
        return cls(**values)

    def is_empty(self) -> bool:
        """Return True when no retention count is set."""
        return all(getattr(self, name) is None for name in RETENTION_SETTINGS)

    def to_arguments(self) -> list[str]:
        """Render the set counts as restic forget flags."""
        arguments: list[str] = []
        for attribute in RETENTION_SETTINGS:
            value = getattr(self, attribute)
            if value is not None:
                arguments.extend([f"--{attribute.replace('_', '-')}", str(value)])
        return arguments


@dataclass
class NotificationSettings:
    """Webhook notification settings."""

    webhook_url: str | None = None
    channel: str = "#general"
    username: str = "Restic Backup"
    emoji_default: str = ":bell:"
    emoji_error: str = ":x:"
    emoji_success: str = ":white_check_mark:"
    on_success: bool = False
    on_error: bool = False

    @classmethod
    def from_settings(cls, settings: dict[str, str]) -> "NotificationSettings":
        """Build notification settings, applying defaults for unset keys."""
        defaults = cls()
        return cls(
            webhook_url=settings.get("SLACK_HOOK") or None,
            channel=settings.get("SLACK_CHANNEL") or defaults.channel,
            username=settings.get("SLACK_USERNAME") or defaults.username,
            emoji_default=settings.get("SLACK_LOG_EMOJI_DEFAULT")
            or defaults.emoji_default,
            emoji_error=settings.get("SLACK_LOG_EMOJI_ERROR") or defaults.emoji_error,
            emoji_success=settings.get("SLACK_LOG_EMOJI_SUCCESS")
            or defaults.emoji_success,
            on_success=_is_enabled(settings.get("SLACK_SEND_NOTIFICATIONS_ON_SUCCESS")),
            on_error=_is_enabled(settings.get("SLACK_SEND_NOTIFICATIONS_ON_ERROR")),
        )


@dataclass
class ResticConfig:
    """Configuration for a restic-do run."""

    # Required fields
    repository: str
    password: str

    # Optional fields with defaults
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    source_type: str = DEFAULT_SOURCE_TYPE
    source_value: str | None = None
    stdin_filename: str | None = None
    exclude: str | None = None
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    restic_binary: str = DEFAULT_RESTIC_BINARY

    # Every key of the env file, exported to the restic process
    environment: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_required_fields()

    def _validate_required_fields(self) -> None:
        """Validate that the repository and its password are non-empty."""
        for key, value in zip(
            REQUIRED_SETTINGS,
            (self.repository, self.password),
            strict=True,
        ):
            if not value or not value.strip():
                raise MissingRequiredSettingError(key)

    def restic_environment(self) -> dict[str, str]:
        """Return the variables restic needs on top of the process environment."""
        return {**self.environment, "RESTIC_PASSWORD": self.password}


class ConfigManager:
    """Manages configuration loading and validation."""

    @staticmethod
    def read_env_file(env_file: Path) -> dict[str, str]:
        """Read key=value settings from an env file.

        Keys declared without a value are dropped. Later assignments of the
        same key win.

        Raises:
            EnvFileNotFoundError: If the file does not exist
            EnvFileUnreadableError: If the file cannot be read

        """
        if not env_file.is_file():
            error_msg = f"Environment file not found: {env_file}"
            raise EnvFileNotFoundError(error_msg)

        if not os.access(env_file, os.R_OK):
            error_msg = f"Cannot read environment file: {env_file}"
            raise EnvFileUnreadableError(error_msg)

        try:
            values = dotenv_values(env_file)
        except (OSError, UnicodeDecodeError) as e:
            error_msg = f"Cannot read environment file: {env_file}"
            raise EnvFileUnreadableError(error_msg, original_error=e) from e

        return {key: value for key, value in values.items() if value is not None}

    @staticmethod
    def load_config(env_file: str | Path) -> ResticConfig:
        """Load and validate configuration from an env file.

        Args:
            env_file: Path to the key=value configuration file

        Returns:
            Validated ResticConfig instance

        Raises:
            EnvFileNotFoundError: If the file does not exist
            EnvFileUnreadableError: If the file cannot be read
            MissingRequiredSettingError: If RESTIC_REPO or RESTIC_PASSWORD is unset
            InvalidRetentionValueError: If a retention count is malformed

        """
        settings = ConfigManager.read_env_file(Path(env_file))

        for key in REQUIRED_SETTINGS:
            if not settings.get(key, "").strip():
                raise MissingRequiredSettingError(key)

        return ResticConfig(
            repository=settings.get("RESTIC_REPO", ""),
            password=settings.get("RESTIC_PASSWORD", ""),
            retention=RetentionPolicy.from_settings(settings),
            source_type=settings.get("BACKUP_SOURCE_TYPE") or DEFAULT_SOURCE_TYPE,
            source_value=settings.get("BACKUP_SOURCE_VALUE") or None,
            stdin_filename=settings.get("STDIN_FILENAME") or None,
            exclude=settings.get("BACKUP_EXCLUDE") or None,
            notifications=NotificationSettings.from_settings(settings),
            restic_binary=settings.get("RESTIC_BIN") or DEFAULT_RESTIC_BINARY,
            environment=settings,
        )


def _is_enabled(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"
