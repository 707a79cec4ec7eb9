"""
Notification queue consumed by the presentation layer.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationQueue:
    """
    Bounded FIFO of user-facing notices; oldest entries drop first.
    """

    def __init__(self, *, max_items: int = 50) -> None:
        self._items: deque[Notification] = deque(maxlen=max(1, max_items))

    def __len__(self) -> int:
        return len(self._items)

    def push(self, message: str, severity: Severity) -> Notification:
        notification = Notification(message=message, severity=severity)
        self._items.append(notification)
        return notification

    def success(self, message: str) -> Notification:
        return self.push(message, Severity.SUCCESS)

    def info(self, message: str) -> Notification:
        return self.push(message, Severity.INFO)

    def error(self, message: str) -> Notification:
        return self.push(message, Severity.ERROR)

    @property
    def latest(self) -> Notification | None:
        return self._items[-1] if self._items else None

    def drain(self) -> list[Notification]:
        items = list(self._items)
        self._items.clear()
        return items
