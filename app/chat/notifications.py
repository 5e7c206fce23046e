"""Notification collaborator: surfaces errors and confirmations to the user."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol


logger = logging.getLogger("app.chat.notifications")


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ""
    variant: str = "default"  # default, destructive
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "created_at": self.created_at.isoformat(),
        }


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log only."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.is_error else logging.INFO
        logger.log(level, "%s: %s", notification.title, notification.description)


class BufferedNotifier(LoggingNotifier):
    """Logs notifications and queues them for delivery to a connected client."""

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)

    def notify(self, notification: Notification) -> None:
        super().notify(notification)
        if self.queue.full():
            # Oldest undelivered notification is dropped
            self.queue.get_nowait()
        self.queue.put_nowait(notification)

    def drain(self) -> list[Notification]:
        pending = []
        while not self.queue.empty():
            pending.append(self.queue.get_nowait())
        return pending


def error(title: str, description: str) -> Notification:
    return Notification(title=title, description=description, variant="destructive")


def info(title: str, description: str = "") -> Notification:
    return Notification(title=title, description=description)
