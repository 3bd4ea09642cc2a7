"""Notification sinks for progress and status events.

The pipeline only talks to the :class:`NotificationSink` protocol. Callers
inject whatever sink suits them: :class:`NullSink` for headless runs,
:class:`LoggingSink` for command line use, or their own UI bridge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

from web_sourcing.utils import utc_now

logger = logging.getLogger(__name__)

Level = Literal["info", "success", "warning", "error"]


@dataclass
class Notification:
    """A single event emitted by the pipeline."""

    event: str  # e.g. "batch.progress", "source.added"
    message: str
    level: Level = "info"
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


class NotificationSink(Protocol):
    async def notify(self, notification: Notification) -> None: ...


class NullSink:
    """Discards every notification."""

    async def notify(self, notification: Notification) -> None:
        return None


_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingSink:
    """Writes notifications to a logger."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    async def notify(self, notification: Notification) -> None:
        self.log.log(_LOG_LEVELS[notification.level], f"[{notification.event}] {notification.message}")


class MemorySink:
    """Keeps notifications in a list, for polling UIs and tests."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def events(self) -> list[str]:
        return [n.event for n in self.notifications]


async def notify_safely(sink: NotificationSink, notification: Notification) -> None:
    """Deliver a notification, logging sink failures instead of raising them."""
    try:
        await sink.notify(notification)
    except Exception as e:
        logger.warning(f"Notification sink failed on {notification.event}: {type(e).__name__}: {e}")
