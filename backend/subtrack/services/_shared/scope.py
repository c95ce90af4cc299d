"""
Cancellation scopes owning the asynchronous work of one consumer.

A wizard, a subscription manager or a notification center each own a
:class:`TaskScope`. Every external call they make runs as a task of that scope;
tearing the scope down cancels whatever is still in flight, so a late response
can never mutate the state of a consumer that is gone.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopeClosed(Exception):
    """Raised when work is submitted to, or interrupted by, a closed scope."""


class TaskScope:
    """
    Structured owner for background and awaited tasks.

    Usage::

        async with TaskScope() as scope:
            row = await scope.run(store.insert("subscriptions", payload))
            scope.spawn(hide_toast_later())

    Leaving the ``async with`` block (or calling :meth:`aclose`) cancels every
    task that is still pending.
    """

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Start ``coro`` as a task owned by this scope and return it."""
        if self._closed:
            coro.close()
            raise ScopeClosed(f"{self.name} is closed")
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        return task

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """
        Run ``coro`` inside the scope and wait for its result.

        :raises ScopeClosed: When the scope is (or becomes) closed before the
            result is available. A cancellation of the *caller* is propagated
            unchanged.
        """
        task = self.spawn(coro)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if self._closed and task.cancelled() and not caller_cancelled:
                raise ScopeClosed(f"{self.name} was closed while waiting") from None
            raise

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    async def aclose(self) -> None:
        """Cancel every pending task and wait until they have all settled."""
        if self._closed:
            return
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("scope.cancelled pending=%d", len(pending), extra={"operation": self.name})
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> TaskScope:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # Awaited tasks re-raise to their caller; this only matters for spawn()
            logger.debug("scope.task_failed", exc_info=task.exception())
