"""NotificationDispatcher — routes notifications to ALL configured sinks.

Every notification dispatched through this module is fanned out to every
registered sink.  Sink failures are logged but do not prevent delivery to
remaining sinks, and never propagate into the editing flow that raised
the notification.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from easel.models.notifications import Notification, NotificationLevel

if TYPE_CHECKING:
    from easel.routing.sinks import NotificationSink

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Routes notifications to all configured sinks.

    Usage
    -----
    >>> dispatcher = NotificationDispatcher()
    >>> dispatcher.register_sink(LoggingSink())
    >>> dispatcher.warning("collection_emptied", "All images removed", record_id="r1")
    """

    def __init__(self) -> None:
        self._sinks: list[NotificationSink] = []

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: NotificationSink) -> None:
        """Register a sink.  Re-registering the same instance is ignored."""
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.info("Registered notification sink: %s", sink.sink_name)

    def unregister_sink(self, sink: NotificationSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)
            logger.info("Unregistered notification sink: %s", sink.sink_name)

    @property
    def registered_sinks(self) -> list[NotificationSink]:
        """Return a copy of the registered sink list."""
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, notification: Notification) -> list[str]:
        """Deliver *notification* to every sink.

        Returns the names of the sinks that accepted it.
        """
        if not self._sinks:
            logger.debug(
                "No notification sinks registered; %s dropped", notification.code
            )
            return []

        succeeded: list[str] = []
        for sink in self._sinks:
            try:
                sink.accept(notification)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Notification sink %s failed for %s: %s",
                    sink.sink_name,
                    notification.code,
                    exc,
                )
        return succeeded

    def notify(
        self,
        level: NotificationLevel,
        code: str,
        message: str,
        *,
        record_id: str | None = None,
    ) -> Notification:
        notification = Notification(
            level=level, code=code, message=message, record_id=record_id
        )
        self.dispatch(notification)
        return notification

    def info(self, code: str, message: str, *, record_id: str | None = None) -> Notification:
        return self.notify(NotificationLevel.INFO, code, message, record_id=record_id)

    def warning(
        self, code: str, message: str, *, record_id: str | None = None
    ) -> Notification:
        return self.notify(NotificationLevel.WARNING, code, message, record_id=record_id)

    def error(self, code: str, message: str, *, record_id: str | None = None) -> Notification:
        return self.notify(NotificationLevel.ERROR, code, message, record_id=record_id)
