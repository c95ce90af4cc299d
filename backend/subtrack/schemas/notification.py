"""Notification schemas."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, validate

from subtrack.services.notifications.dto import Notification, NotificationType

logger = logging.getLogger(__name__)

_TYPES = [t.value for t in NotificationType]


class NotificationRecordSchema(Schema):
    """Normalize one ``notifications`` row into a :class:`Notification`."""

    class Meta:
        unknown = EXCLUDE

    id = fields.Raw(required=True)
    type = fields.String(required=True, validate=validate.OneOf(_TYPES))
    title = fields.String(required=True)
    message = fields.String(allow_none=True, load_default="")
    timestamp = fields.DateTime(required=True)

    @post_load
    def make_notification(self, data: dict[str, Any], **_: Any) -> Notification:
        return Notification(
            id=str(data["id"]),
            type=NotificationType(data["type"]),
            title=data["title"],
            message=data["message"] or "",
            timestamp=data["timestamp"],
        )


_record_schema = NotificationRecordSchema()


def load_notifications(rows: Iterable[Mapping[str, Any]]) -> list[Notification]:
    """Normalize stored rows, skipping (and logging) the ones that do not parse."""
    result: list[Notification] = []
    for row in rows:
        try:
            result.append(_record_schema.load(row))
        except ValidationError as exc:
            logger.warning("notifications.row_skipped id=%s errors=%s", row.get("id"), exc.messages)
    return result


class NotificationCreateSchema(Schema):
    """Input payload for posting a notification."""

    type = fields.String(required=True, validate=validate.OneOf(_TYPES))
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    message = fields.String(load_default="", validate=validate.Length(max=1000))


class NotificationSchema(Schema):
    id = fields.String()
    type = fields.Function(lambda n: n.type.value)
    title = fields.String()
    message = fields.String()
    timestamp = fields.DateTime()
