"""
Notification Channel

The out-of-band channel for user-visible outcomes: confirmations,
failed writes, blocked actions. The UI drains it on every render and
shows each notification as a toast.
"""

import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum

import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger(__name__)


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notification(BaseModel):
    """One toast."""

    title: str
    description: str = ""
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        return self.variant == NotificationVariant.DESTRUCTIVE


class Notifier:
    """
    Collects notifications until the UI drains them.

    Producers run on the event loop; the UI drains from its own thread.
    """

    def __init__(self, max_pending: int = 50):
        self._pending: deque[Notification] = deque(maxlen=max_pending)
        self._lock = threading.Lock()

    def notify(
        self,
        title: str,
        description: str = "",
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        with self._lock:
            self._pending.append(notification)
        return notification

    def success(self, title: str, description: str = "") -> Notification:
        return self.notify(title, description)

    def error(self, title: str, description: str = "") -> Notification:
        logger.info("error_notification", title=title, description=description)
        return self.notify(title, description, NotificationVariant.DESTRUCTIVE)

    def drain(self) -> list[Notification]:
        """Take every pending notification, oldest first."""
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items
