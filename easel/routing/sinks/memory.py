"""In-memory sink — keeps notifications for a UI to display.

The sink is bounded; the oldest notifications fall off first.
"""

from __future__ import annotations

import collections

from easel.models.notifications import Notification, NotificationLevel


class MemorySink:
    """Collects notifications in arrival order.

    Parameters
    ----------
    max_items:
        How many notifications to retain.
    """

    def __init__(self, max_items: int = 256) -> None:
        self._items: collections.deque[Notification] = collections.deque(
            maxlen=max_items
        )

    @property
    def sink_name(self) -> str:
        return "memory"

    def accept(self, notification: Notification) -> None:
        self._items.append(notification)

    @property
    def notifications(self) -> list[Notification]:
        return list(self._items)

    def codes(self) -> list[str]:
        return [n.code for n in self._items]

    def by_level(self, level: NotificationLevel) -> list[Notification]:
        return [n for n in self._items if n.level == level]

    def clear(self) -> None:
        self._items.clear()
