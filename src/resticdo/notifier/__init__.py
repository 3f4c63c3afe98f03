"""Webhook notification functionality for restic-do."""

from resticdo.notifier.notifier import (
    NotificationContext,
    NotificationEvent,
    NotificationKind,
    NotificationSender,
    json_escape,
)

__all__ = [
    "NotificationContext",
    "NotificationEvent",
    "NotificationKind",
    "NotificationSender",
    "json_escape",
]
