"""Notification dispatch for engagement events.

Provides a pluggable dispatcher. The default writes a structured log line;
deployments swap in a real delivery backend with ``set_dispatcher``.
Dispatch is fire-and-forget: a failing dispatcher is logged and never undoes
the state change that triggered it.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

logger = logging.getLogger("trainermatch.notifications")


@dataclass
class Notification:
    recipient_id: uuid.UUID
    event: str
    title: str
    payload: dict = field(default_factory=dict)


class NotificationDispatcher(ABC):
    """Abstract delivery backend for notifications."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver one notification. May raise on delivery failure."""
        ...


class LoggingDispatcher(NotificationDispatcher):
    """Writes notifications to the log. Used in development and tests."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "notify recipient=%s event=%s title=%r",
            notification.recipient_id,
            notification.event,
            notification.title,
        )


class InMemoryDispatcher(NotificationDispatcher):
    """Keeps every notification in a list, for inspection."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


_dispatcher: NotificationDispatcher = LoggingDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher) -> NotificationDispatcher:
    """Install ``dispatcher`` and return the previous one."""
    global _dispatcher
    previous = _dispatcher
    _dispatcher = dispatcher
    return previous


async def notify(
    recipient_id: uuid.UUID,
    event: str,
    title: str,
    payload: dict | None = None,
) -> bool:
    """Send a notification. Returns False if delivery failed."""
    notification = Notification(
        recipient_id=recipient_id,
        event=event,
        title=title,
        payload=payload or {},
    )
    try:
        await _dispatcher.send(notification)
    except Exception:
        logger.warning(
            "Notification delivery failed recipient=%s event=%s",
            recipient_id,
            event,
            exc_info=True,
        )
        return False
    return True
