"""Notification endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from flask import Blueprint, current_app, request

from subtrack.api.deps import Caller, authenticate, json_response, no_content, timing
from subtrack.core.errors import from_service_error
from subtrack.core.extensions import get_gateway
from subtrack.schemas import NotificationCreateSchema, NotificationSchema
from subtrack.services._shared.scope import TaskScope
from subtrack.services.notifications.center import NotificationCenter

bp = Blueprint("notifications", __name__)

create_schema = NotificationCreateSchema()
notification_schema = NotificationSchema()
notification_list_schema = NotificationSchema(many=True)


@asynccontextmanager
async def _center(caller: Caller) -> AsyncIterator[NotificationCenter]:
    config = current_app.config
    async with get_gateway().open_store(caller.access_token) as store:
        # Leaving the scope cancels the toast timer, which has no meaning over HTTP
        async with TaskScope("notifications") as scope:
            yield NotificationCenter(
                store,
                user_id=caller.user_id,
                scope=scope,
                toast_seconds=float(config["NOTIFICATION_TOAST_SECONDS"]),
                history_limit=int(config["NOTIFICATION_HISTORY_LIMIT"]),
            )


@bp.get("")
@timing
async def list_notifications():
    """Return the newest notifications of the caller."""

    caller = await authenticate()
    async with _center(caller) as center:
        notifications = await center.load()
        if center.last_error is not None:
            raise from_service_error(center.last_error)
    return json_response({"data": notification_list_schema.dump(notifications)})


@bp.post("")
@timing
async def create_notification():
    """Record a notification; storing it is best effort."""

    caller = await authenticate()
    payload = create_schema.load(request.get_json(silent=True) or {})
    async with _center(caller) as center:
        notification = await center.add(payload["type"], payload["title"], payload["message"])
        persisted = center.last_error is None
    body = {"data": notification_schema.dump(notification), "persisted": persisted}
    return json_response(body, status=201)


@bp.delete("")
@timing
async def clear_notifications():
    caller = await authenticate()
    async with _center(caller) as center:
        await center.clear_all()
    return no_content()


@bp.delete("/<notification_id>")
@timing
async def delete_notification(notification_id: str):
    caller = await authenticate()
    async with _center(caller) as center:
        await center.remove(notification_id)
    return no_content()
