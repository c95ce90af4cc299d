"""
Notification center.

Keeps the user's notification history in memory (newest first), controls the
transient toast flag, and mirrors every change to the ``notifications`` table.
Persistence is best effort: store failures are logged and never reach the
caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from subtrack.schemas.notification import load_notifications
from subtrack.services._shared.errors import ServiceError, classify_error
from subtrack.services._shared.observability import ObservabilityContext, maybe_timed
from subtrack.services._shared.ports import TableStore
from subtrack.services._shared.scope import ScopeClosed, TaskScope
from subtrack.services.notifications.dto import Notification, NotificationType

logger = logging.getLogger(__name__)

TABLE = "notifications"


class NotificationCenter:
    """
    In-memory notification history backed by a table store.

    :param store: Table store holding the ``notifications`` rows.
    :param user_id: Owner of the notifications; every call is a no-op without one.
    :param scope: Cancellation scope owning the toast timers and store calls.
    :param toast_seconds: Delay before the toast is hidden again.
    :param history_limit: Number of rows fetched by :meth:`load`.
    :param sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        store: TableStore,
        *,
        user_id: str | None,
        scope: TaskScope | None = None,
        toast_seconds: float = 5.0,
        history_limit: int = 50,
        observer: ObservabilityContext | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.scope = scope or TaskScope("notifications")
        self.toast_seconds = toast_seconds
        self.history_limit = history_limit
        self.observer = observer
        self._sleep = sleep
        self.notifications: list[Notification] = []
        self.toast_visible = False
        self.last_error: ServiceError | None = None
        # bumped on every add so a stale timer cannot hide a newer toast
        self._toast_generation = 0

    # ------------------------------------------------------------------ #
    # Toast
    # ------------------------------------------------------------------ #

    def hide_toast(self) -> None:
        self.toast_visible = False

    async def _hide_later(self, generation: int) -> None:
        await self._sleep(self.toast_seconds)
        if generation == self._toast_generation:
            self.toast_visible = False

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def add(self, type: NotificationType | str, title: str, message: str) -> Notification | None:
        """
        Prepend a notification, show the toast and persist the row.

        :returns: The new notification, or ``None`` when there is no user or
            the center is closed.
        """
        if not self.user_id or self.scope.closed:
            return None
        notification = Notification(
            id=str(uuid.uuid4()),
            type=NotificationType(type),
            title=title,
            message=message,
            timestamp=datetime.now(UTC),
        )
        self.notifications.insert(0, notification)
        self.toast_visible = True
        self._toast_generation += 1
        self.scope.spawn(self._hide_later(self._toast_generation))

        await self._persist(
            "add",
            lambda: self.store.insert(
                TABLE,
                {
                    "id": notification.id,
                    "user_id": self.user_id,
                    "type": notification.type.value,
                    "title": notification.title,
                    "message": notification.message,
                    "timestamp": notification.timestamp.isoformat(),
                },
            ),
        )
        return notification

    async def remove(self, notification_id: str) -> None:
        if not self.user_id or self.scope.closed:
            return
        self.notifications = [n for n in self.notifications if n.id != notification_id]
        await self._persist(
            "remove",
            lambda: self.store.delete(
                TABLE, filters={"user_id": self.user_id, "id": notification_id}
            ),
        )

    async def clear_all(self) -> None:
        if not self.user_id or self.scope.closed:
            return
        self.notifications = []
        await self._persist(
            "clear_all", lambda: self.store.delete(TABLE, filters={"user_id": self.user_id})
        )

    async def load(self) -> list[Notification]:
        """Replace the history with the newest stored rows; failures keep the current list."""
        if not self.user_id or self.scope.closed:
            return self.notifications
        try:
            with maybe_timed(self.observer, "notifications.load"):
                rows = await self.scope.run(
                    self.store.select(
                        TABLE,
                        filters={"user_id": self.user_id},
                        order_by="timestamp",
                        descending=True,
                        limit=self.history_limit,
                    )
                )
            self.notifications = load_notifications(rows)
            self.last_error = None
        except ScopeClosed:
            pass
        except Exception as exc:
            self._record_failure("load", exc)
        return self.notifications

    async def aclose(self) -> None:
        await self.scope.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _persist(self, operation: str, call: Callable[[], Awaitable[object]]) -> None:
        try:
            await self.scope.run(call())
        except ScopeClosed:
            return
        except Exception as exc:
            self._record_failure(operation, exc)

    def _record_failure(self, operation: str, exc: Exception) -> None:
        err = classify_error(exc)
        self.last_error = err
        logger.error(
            "notifications.%s_failed: %s", operation, err, extra={"operation": f"notifications.{operation}"}
        )
        if self.observer is not None:
            self.observer.record_error(f"notifications.{operation}", exc)
