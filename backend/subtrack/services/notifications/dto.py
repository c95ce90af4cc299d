"""DTOs for in-app notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class Notification:
    """
    One user-facing message kept in the notification history.

    :ivar id: Identifier shared by the in-memory entry and the stored row.
    :ivar type: Severity used for presentation.
    :ivar timestamp: Creation time (UTC).
    """

    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: datetime
