"""Shared utilities: logging setup and notification sinks."""
from .log import setup_logging
from .notifications import (
    Notification,
    NotificationSink,
    LoggingNotificationSink,
    CollectingNotificationSink,
)

__all__ = [
    "setup_logging",
    "Notification",
    "NotificationSink",
    "LoggingNotificationSink",
    "CollectingNotificationSink",
]
