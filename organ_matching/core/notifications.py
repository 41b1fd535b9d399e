"""
Notification Sinks

Notifications announce completed operations. They are published after
the unit of work commits and are fire-and-forget: a failing sink is
logged and never undoes or fails the operation that produced it.
"""

import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel

from ..observability import get_logger, get_metrics
from ..schemas import EventType, Notification


logger = get_logger(__name__)


class NotificationSink(ABC):
    """Destination for notifications."""

    @abstractmethod
    def publish(self, notification: Notification) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes each notification to the log (the default sink)."""

    def publish(self, notification: Notification) -> None:
        logger.info(
            f"Notification {notification.event_type.value}",
            event_id=str(notification.event_id),
            event_type=notification.event_type.value,
            payload=notification.payload,
        )


class InMemoryNotificationSink(NotificationSink):
    """Keeps notifications in a list (for testing)."""

    def __init__(self):
        self._notifications: list[Notification] = []
        self._lock = Lock()

    def publish(self, notification: Notification) -> None:
        with self._lock:
            self._notifications.append(notification)

    @property
    def notifications(self) -> list[Notification]:
        with self._lock:
            return list(self._notifications)

    def of_type(self, event_type: EventType) -> list[Notification]:
        return [n for n in self.notifications if n.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._notifications.clear()


def emit(
    sink: NotificationSink,
    event_type: EventType,
    payload: BaseModel,
    emitted_at: Optional[int] = None,
) -> Optional[Notification]:
    """
    Publish one notification, swallowing and logging sink failures.

    Returns the notification, or None if the sink failed.
    """
    notification = Notification(
        event_id=uuid4(),
        event_type=event_type,
        payload=payload.model_dump(mode="json"),
        emitted_at=emitted_at if emitted_at is not None else int(time.time()),
    )

    try:
        sink.publish(notification)
    except Exception:
        get_metrics().record_notification(success=False)
        logger.exception(
            f"Notification sink failed for {event_type.value}",
            event_id=str(notification.event_id),
            event_type=event_type.value,
        )
        return None

    get_metrics().record_notification(success=True)
    return notification
