"""User-visible notifications routed to sinks."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A transient message for the user (toast, banner, log line).

    ``code`` is a stable machine-readable identifier such as
    ``"edition_sale_failed"``; ``message`` is shown verbatim.
    """

    model_config = ConfigDict(frozen=True)

    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    level: NotificationLevel
    code: str
    message: str
    record_id: str | None = None
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
