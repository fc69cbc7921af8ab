"""
Notification channel for the custom fields app.

Notifications are queued with an optional delay and an auto-dismiss time.
There are no timers or threads: due notifications are handed to a sink
whenever the page renders.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_HIDE_AFTER = 7.5


class NotificationType(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    FAILURE = "failure"

    @classmethod
    def coerce(cls, value) -> 'NotificationType':
        """Unknown types fall back to info."""
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Unknown notification type '{value}', using info")
            return cls.INFO


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: NotificationType
    title: str
    subtitle: Optional[str] = None
    due_at: float = 0.0
    hide_after: float = DEFAULT_HIDE_AFTER

    @property
    def message(self) -> str:
        if self.subtitle:
            return f"{self.title}: {self.subtitle}"
        return self.title

    def is_expired(self, now: float) -> bool:
        return now >= self.due_at + self.hide_after


Sink = Callable[[Notification], None]


class NotificationChannel:
    """
    Queue of user-facing messages.

    Args:
        delay: Seconds before a new notification becomes due
        hide_after: Seconds a shown notification stays visible
        clock: Time source, monotonic by default
    """

    def __init__(self, delay: float = 0.0, hide_after: float = DEFAULT_HIDE_AFTER,
                 clock: Callable[[], float] = time.monotonic):
        self.delay = delay
        self.hide_after = hide_after
        self._clock = clock
        self._queue: List[Notification] = []

    def notify(self, type: str, title: str, subtitle: Optional[str] = None) -> Notification:
        notification = Notification(
            type=NotificationType.coerce(type),
            title=title,
            subtitle=subtitle,
            due_at=self._clock() + self.delay,
            hide_after=self.hide_after
        )
        self._queue.append(notification)
        logger.info(f"Queued {notification.type.value} notification: {notification.message}")
        return notification

    def success(self, title: str, subtitle: Optional[str] = None) -> Notification:
        return self.notify(NotificationType.SUCCESS, title, subtitle)

    def info(self, title: str, subtitle: Optional[str] = None) -> Notification:
        return self.notify(NotificationType.INFO, title, subtitle)

    def warning(self, title: str, subtitle: Optional[str] = None) -> Notification:
        return self.notify(NotificationType.WARNING, title, subtitle)

    def failure(self, title: str, subtitle: Optional[str] = None) -> Notification:
        return self.notify(NotificationType.FAILURE, title, subtitle)

    def pending(self) -> List[Notification]:
        """All queued notifications, due or not."""
        return list(self._queue)

    def drain(self) -> List[Notification]:
        """Remove and return the notifications that are due now."""
        now = self._clock()
        due = [n for n in self._queue if n.due_at <= now]
        self._queue = [n for n in self._queue if n.due_at > now]
        return due

    def flush(self, sink: Sink) -> int:
        """
        Hand every due notification to a sink.

        Returns:
            Number of notifications delivered
        """
        due = self.drain()
        for notification in due:
            sink(notification)
        return len(due)
