"""Shared API helpers for request parsing and cross-cutting concerns."""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from flask import Response, current_app, jsonify, request

from subtrack.core.errors import Unauthorized, from_service_error
from subtrack.core.extensions import get_gateway
from subtrack.core.logger import bind_user
from subtrack.services._shared.errors import classify_error
from subtrack.services._shared.ports import AuthUser
from subtrack.services.subscriptions.dto import OperationResult

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(slots=True)
class Caller:
    """Authenticated caller resolved from the bearer token."""

    access_token: str
    user: AuthUser

    @property
    def user_id(self) -> str:
        return self.user.id


def bearer_token() -> str:
    """Return the bearer token of the current request or raise 401."""

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing bearer token")
    return token.strip()


async def authenticate() -> Caller:
    """Resolve the caller through the identity provider."""

    token = bearer_token()
    try:
        user = await get_gateway().resolve_user(token)
    except Exception as exc:
        raise from_service_error(classify_error(exc)) from exc
    if user is None:
        raise Unauthorized("Your session is no longer valid. Please log in again.")
    bind_user(user.id)
    return Caller(access_token=token, user=user)


def raise_for_result(result: OperationResult) -> None:
    """Turn a failed service result into the matching API error."""

    if not result.ok and result.error is not None:
        raise from_service_error(result.error)


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def _log_elapsed(start: float) -> None:
    elapsed_ms = (time.perf_counter() - start) * 1000
    current_app.logger.debug(
        "request.elapsed",
        extra={"endpoint": getattr(request, "endpoint", None), "elapsed_ms": round(elapsed_ms, 2)},
    )


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds (sync or async views)."""

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any):
            start = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_elapsed(start)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            _log_elapsed(start)

    return wrapper  # type: ignore[return-value]


def no_content() -> Response:
    """Return an empty ``204 No Content`` response."""

    return Response(status=204)
