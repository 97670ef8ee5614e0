"""Single-slot, auto-expiring feed of success and error messages."""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from .scheduler import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 3.0
HISTORY_SIZE = 100


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A message shown to the user until it expires or is dismissed."""

    message: str
    kind: NotificationKind
    created_at: float

    @property
    def is_error(self) -> bool:
        return self.kind is NotificationKind.ERROR


NotificationListener = Callable[[Optional[Notification]], None]


class NotificationQueue:
    """Holds at most one visible notification; the newest push wins.

    Every push restarts the expiry timer for the new message. Listeners
    are called with the new notification, or ``None`` when the slot is
    cleared.
    """

    def __init__(self, scheduler: Scheduler, duration: float = DEFAULT_DURATION):
        self.scheduler = scheduler
        self.duration = duration
        self._current: Optional[Notification] = None
        self._expiry_token: Optional[int] = None
        self._listeners: List[NotificationListener] = []
        self.history: Deque[Notification] = deque(maxlen=HISTORY_SIZE)

    @property
    def current(self) -> Optional[Notification]:
        return self._current

    def add_listener(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)

    def push(self, message: str, kind: NotificationKind) -> Notification:
        """Show ``message``, replacing whatever is visible."""
        self.scheduler.cancel(self._expiry_token)
        notification = Notification(message=message, kind=NotificationKind(kind), created_at=self.scheduler.now())
        self._current = notification
        self.history.append(notification)
        self._expiry_token = self.scheduler.call_later(self.duration, self._expire)
        if notification.is_error:
            logger.warning(f"Notification: {message}")
        else:
            logger.info(f"Notification: {message}")
        self._emit()
        return notification

    def success(self, message: str) -> Notification:
        return self.push(message, NotificationKind.SUCCESS)

    def error(self, message: str) -> Notification:
        return self.push(message, NotificationKind.ERROR)

    def _expire(self) -> None:
        self._expiry_token = None
        self._clear()

    def dismiss(self) -> None:
        """Close the visible notification before it expires."""
        self.scheduler.cancel(self._expiry_token)
        self._expiry_token = None
        self._clear()

    def _clear(self) -> None:
        if self._current is None:
            return
        self._current = None
        self._emit()

    def close(self) -> None:
        """Teardown: drop the visible message and its timer."""
        self.scheduler.cancel(self._expiry_token)
        self._expiry_token = None
        self._current = None
