"""Webhook notification functionality for restic-do."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

import requests

from resticdo.config import NotificationSettings
from resticdo.logging import SUCCESS

NOTIFICATION_TIMEOUT = 10

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
}


def json_escape(value: str) -> str:
    """Escape a string for embedding between double quotes in JSON.

    Backslash, double quote, tab, newline and carriage return get their short
    escapes; any other control character is written as a \\u escape.
    """
    escaped = []
    for char in value:
        if char in _ESCAPES:
            escaped.append(_ESCAPES[char])
        elif ord(char) < 0x20:
            escaped.append(f"\\u{ord(char):04x}")
        else:
            escaped.append(char)
    return "".join(escaped)


class NotificationKind(Enum):
    """Outcome a notification reports."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class NotificationContext:
    """Run metadata attached to every notification."""

    repository: str | None = None
    action: str | None = None
    source_type: str | None = None
    source_value: str | None = None
    stdin_filename: str | None = None
    config_excludes: str | None = None
    cli_excludes: tuple[str, ...] = ()

    def render(self) -> str:
        """Render the metadata as Slack block quotes, one line per set field."""
        lines = [
            f"> *Repository*: `{self.repository or 'Not set'}`",
            f"> *Action*: `{self.action or 'Not set'}`",
        ]
        for label, value in (
            ("Source Type", self.source_type),
            ("Source Value", self.source_value),
            ("Stdin Filename", self.stdin_filename),
            ("Excludes (.env)", self.config_excludes),
            ("Excludes (CLI)", ", ".join(self.cli_excludes)),
        ):
            if value:
                lines.append(f"> *{label}*: `{value}`")
        return "\n" + "\n".join(lines)


@dataclass(frozen=True)
class NotificationEvent:
    """A success or error report for one run."""

    kind: NotificationKind
    message: str
    context: NotificationContext = field(default_factory=NotificationContext)
    emoji: str | None = None

    @classmethod
    def success(
        cls,
        message: str,
        context: NotificationContext | None = None,
        emoji: str | None = None,
    ) -> "NotificationEvent":
        """Create a success event, optionally overriding the configured emoji."""
        return cls(
            NotificationKind.SUCCESS,
            message,
            context or NotificationContext(),
            emoji,
        )

    @classmethod
    def error(
        cls,
        message: str,
        context: NotificationContext | None = None,
    ) -> "NotificationEvent":
        """Create an error event."""
        return cls(NotificationKind.ERROR, message, context or NotificationContext())


class NotificationSender:
    """Sends best-effort webhook notifications in the background.

    Each notification is posted from a worker thread with a bounded timeout.
    Callers never wait for delivery, and delivery failures are dropped.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        logger: logging.Logger,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the NotificationSender.

        Args:
            settings: Webhook endpoint, identity and toggles
            logger: Logger instance for logging operations
            session: HTTP session used to post; notifications are disabled
                when it is None

        """
        self.settings = settings
        self.logger = logger
        self.session = session
        self._executor: ThreadPoolExecutor | None = None

    def is_enabled(self, kind: NotificationKind) -> bool:
        """Return True if notifications of this kind are switched on."""
        if kind is NotificationKind.SUCCESS:
            return self.settings.on_success
        return self.settings.on_error

    def build_payload(self, event: NotificationEvent) -> str:
        """Build the JSON request body for an event."""
        emoji = event.emoji or (
            self.settings.emoji_error
            if event.kind is NotificationKind.ERROR
            else self.settings.emoji_default
        )
        text = event.message + event.context.render()
        return (
            f'{{"channel": "{json_escape(self.settings.channel)}", '
            f'"username": "{json_escape(self.settings.username)}", '
            f'"text": "{json_escape(text)}", '
            f'"icon_emoji": "{json_escape(emoji)}"}}'
        )

    def notify(self, event: NotificationEvent) -> Future[None] | None:
        """Send a notification for the event without waiting for delivery.

        Returns:
            The pending delivery, or None if nothing was sent

        """
        if not self.is_enabled(event.kind):
            self.logger.debug(f"{event.kind.value} notifications are disabled")
            return None

        if not self.settings.webhook_url:
            self.logger.warning("Cannot send Slack notification: SLACK_HOOK not configured")
            return None

        if self.session is None:
            self.logger.warning(
                "Cannot send Slack notification: no HTTP client available",
            )
            return None

        payload = self.build_payload(event)
        self.logger.info("Sending Slack notification...")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="notifier",
            )
        future = self._executor.submit(self._post, self.settings.webhook_url, payload)
        self.logger.log(SUCCESS, "Slack notification initiated")
        return future

    def _post(self, url: str, payload: str) -> None:
        session = self.session
        if session is None:
            return
        try:
            response = session.post(
                url,
                data=payload.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=NOTIFICATION_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.debug(f"Slack notification was not delivered: {e}")

    def close(self) -> None:
        """Stop accepting notifications without waiting for pending ones."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
