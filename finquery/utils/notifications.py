"""
Notification sinks for transient, user-facing messages
("Using GROQ", "gemini rate limit - trying groq...").

The host UI decides how to show them; the core only posts.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

logger = logging.getLogger("finquery.notifications")


@dataclass
class Notification:
    message: str
    level: str = "info"  # info | success | warning | error


class NotificationSink(ABC):
    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Default sink: notifications go to the log."""

    _LEVELS = {
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(self._LEVELS.get(level, logging.INFO), message)


class CollectingNotificationSink(NotificationSink):
    """Keeps notifications in memory so an API response can return them."""

    def __init__(self):
        self.notifications: List[Notification] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.notifications.append(Notification(message=message, level=level))

    def drain(self) -> List[Notification]:
        drained, self.notifications = self.notifications, []
        return drained
