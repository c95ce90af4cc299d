"""Injectable, bounded diagnostics shared by the signup and data services."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ObservedEvent:
    """One entry of a ring buffer."""

    kind: str
    name: str
    at: datetime
    data: dict[str, Any] = field(default_factory=dict)


class ObservabilityContext:
    """
    Record validation passes, errors and timings in fixed-size ring buffers.

    Services receive an instance explicitly (or ``None``); nothing here feeds
    back into business decisions, so removing it never changes behaviour.
    """

    def __init__(self, *, capacity: int = 100) -> None:
        self.capacity = capacity
        self.validations: deque[ObservedEvent] = deque(maxlen=capacity)
        self.errors: deque[ObservedEvent] = deque(maxlen=capacity)
        self.timings: deque[ObservedEvent] = deque(maxlen=capacity)

    def record_validation(self, form: str, errors: dict[str, str]) -> None:
        self.validations.append(
            ObservedEvent("validation", form, datetime.now(UTC), {"errors": dict(errors)})
        )

    def record_error(self, operation: str, error: BaseException) -> None:
        self.errors.append(
            ObservedEvent(
                "error",
                operation,
                datetime.now(UTC),
                {"type": error.__class__.__name__, "message": str(error)},
            )
        )

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            self.timings.append(
                ObservedEvent("timing", operation, datetime.now(UTC), {"elapsed_ms": elapsed_ms})
            )
            logger.debug("operation.elapsed", extra={"operation": operation, "elapsed_ms": elapsed_ms})

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Return a JSON-friendly copy of every buffer, oldest first."""

        def _dump(buffer: deque[ObservedEvent]) -> list[dict[str, Any]]:
            return [
                {"kind": e.kind, "name": e.name, "at": e.at.isoformat(), **e.data} for e in buffer
            ]

        return {
            "validations": _dump(self.validations),
            "errors": _dump(self.errors),
            "timings": _dump(self.timings),
        }


@contextmanager
def maybe_timed(observer: ObservabilityContext | None, operation: str) -> Iterator[None]:
    """Time ``operation`` when an observer is present, otherwise do nothing."""
    if observer is None:
        yield
        return
    with observer.timed(operation):
        yield
