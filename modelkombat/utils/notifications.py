"""
User-facing notifications.

State-changing operations of the configuration session report their outcome as a
short title and description. Delivery is one-way: the session never waits on or
reads back from a notifier.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass
class Notification:
    title: str
    description: str
    variant: str = DEFAULT

    @property
    def is_error(self) -> bool:
        return self.variant == DESTRUCTIVE


class Notifier:
    """Base notification sink; subclasses override ``deliver``."""

    def notify(self, title: str, description: str, variant: str = DEFAULT):
        self.deliver(Notification(title=title, description=description, variant=variant))

    def deliver(self, notification: Notification):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Used when no UI is attached."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)

    def deliver(self, notification: Notification):
        level = logging.WARNING if notification.is_error else logging.INFO
        self.logger.log(level, f"{notification.title}: {notification.description}")


class CallbackNotifier(Notifier):
    """Forwards notifications to registered callables (e.g. a UI toast)."""

    def __init__(self):
        self._callbacks: List[Callable[[Notification], None]] = []
        self.logger = logging.getLogger(__name__)

    def subscribe(self, callback: Callable[[Notification], None]):
        self._callbacks.append(callback)

    def deliver(self, notification: Notification):
        for callback in list(self._callbacks):
            try:
                callback(notification)
            except Exception as e:
                # Subscriber errors are logged, never propagated
                self.logger.error(f"Notification callback failed: {e}", exc_info=True)


class RecordingNotifier(Notifier):
    """Keeps every notification in memory, newest last."""

    def __init__(self):
        self.notifications: List[Notification] = []

    def deliver(self, notification: Notification):
        self.notifications.append(notification)

    @property
    def last(self) -> Notification:
        return self.notifications[-1] if self.notifications else None

    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]
