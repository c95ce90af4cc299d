"""Global pytest fixtures for the SubTrack API and services."""

from __future__ import annotations

import os
from collections.abc import Generator
from typing import Any, Callable

import pytest
from flask import Flask

from subtrack import create_app
from subtrack.core.config import TestingConfig
from subtrack.core.extensions import GATEWAY_KEY, SIGNUP_SESSIONS_KEY, SignupSessions
from subtrack.services._shared.scope import TaskScope
from tests.helpers.fakes import FakeGateway, FakeIdentityProvider, InMemoryTableStore


@pytest.fixture(scope="session")
def app() -> Generator[Flask, None, None]:
    """Create and configure a Flask application for tests.

    Returns
    -------
    Generator[Flask, None, None]
        Configured Flask application instance.
    """

    os.environ.setdefault("APP_ENV", "testing")
    application = create_app(TestingConfig, instance_relative_config=False)
    yield application


@pytest.fixture()
def gateway(app: Flask) -> Generator[FakeGateway, None, None]:
    """Swap the hosted backend for in-memory doubles for one test."""

    original_gateway = app.extensions[GATEWAY_KEY]
    original_sessions = app.extensions[SIGNUP_SESSIONS_KEY]
    fake = FakeGateway()
    app.extensions[GATEWAY_KEY] = fake
    app.extensions[SIGNUP_SESSIONS_KEY] = SignupSessions(limit=10)
    try:
        yield fake
    finally:
        app.extensions[GATEWAY_KEY] = original_gateway
        app.extensions[SIGNUP_SESSIONS_KEY] = original_sessions


@pytest.fixture()
def client(app: Flask, gateway: FakeGateway) -> Any:
    """Return a Flask test client wired to the fake gateway."""

    return app.test_client()


@pytest.fixture()
def auth_token(gateway: FakeGateway) -> str:
    """Bearer token of a confirmed user ``user-1``."""

    return gateway.login("user-1")


@pytest.fixture()
def auth_header(auth_token: str) -> dict[str, str]:
    """Authorization header for authenticated requests."""

    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture()
def store() -> InMemoryTableStore:
    return InMemoryTableStore()


@pytest.fixture()
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
async def scope() -> Any:
    """Task scope closed at teardown."""

    task_scope = TaskScope("test")
    yield task_scope
    await task_scope.aclose()


@pytest.fixture()
def freeze_time() -> Callable[[str | None], Any]:
    """Factory returning :func:`freezegun.freeze_time`.

    Examples
    --------
    >>> def test_with_frozen_time(freeze_time):
    ...     with freeze_time("2024-01-01"):
    ...         ...
    """

    from freezegun import freeze_time as _freeze_time

    def _factory(target: str | None = None) -> Any:
        return _freeze_time(target or "2024-01-01")

    return _factory


@pytest.fixture()
def recorded_sleep() -> tuple[list[float], Callable[[float], Any]]:
    """An awaitable sleep that records its delays without waiting."""

    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    return delays, _sleep
