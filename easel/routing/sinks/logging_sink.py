"""Logging sink — writes notifications to the standard logging tree."""

from __future__ import annotations

import logging

from easel.models.notifications import Notification, NotificationLevel

logger = logging.getLogger(__name__)

_LEVELS: dict[NotificationLevel, int] = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


class LoggingSink:
    """Logs each notification at the matching level."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    @property
    def sink_name(self) -> str:
        return "logging"

    def accept(self, notification: Notification) -> None:
        self._logger.log(
            _LEVELS[notification.level],
            "[%s] %s (record=%s)",
            notification.code,
            notification.message,
            notification.record_id or "-",
        )
