"""Application-wide collaborators stored in ``app.extensions``."""

from __future__ import annotations

import threading
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass

import httpx
from flask import Flask, current_app

from subtrack.core.errors import Conflict, NotFound
from subtrack.infra.supabase._http import build_client
from subtrack.infra.supabase.supabase_auth_client import SupabaseAuthClient
from subtrack.infra.supabase.supabase_table_store import SupabaseTableStore
from subtrack.services._shared.ports import AuthSession, AuthUser, IdentityProvider, TableStore
from subtrack.services.signup.wizard import SignupWizard

GATEWAY_KEY = "supabase_gateway"
SIGNUP_SESSIONS_KEY = "signup_sessions"


@dataclass(slots=True)
class SupabaseGateway:
    """
    Factory for the hosted-backend adapters.

    Clients are created per use: Flask runs every async view in its own event
    loop, so nothing bound to a loop is kept between requests.

    :param url: Project URL.
    :param anon_key: Public anon key.
    :param timeout: Per-request timeout in seconds.
    :param transport: Optional httpx transport shared by every client (tests).
    """

    url: str
    anon_key: str
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    def identity(self, session: AuthSession | None = None) -> IdentityProvider:
        return SupabaseAuthClient(
            self.url,
            self.anon_key,
            timeout=self.timeout,
            transport=self.transport,
            session=session,
        )

    async def resolve_user(self, access_token: str) -> AuthUser | None:
        client = SupabaseAuthClient(
            self.url, self.anon_key, timeout=self.timeout, transport=self.transport
        )
        return await client.user_from_token(access_token)

    @asynccontextmanager
    async def open_store(self, access_token: str) -> AsyncIterator[TableStore]:
        """Yield a table store acting with the user's bearer token."""
        client = build_client(
            self.url,
            self.anon_key,
            access_token=access_token,
            timeout=self.timeout,
            transport=self.transport,
        )
        async with SupabaseTableStore(client) as store:
            yield store


class SignupSessions:
    """
    Bounded in-process registry of signup wizards keyed by session id.

    The oldest session is dropped once ``limit`` is exceeded. Wizards keep no
    tasks alive between requests, so eviction needs no teardown. Each session
    carries its own lock; :meth:`hold` serializes requests touching the same
    wizard across gunicorn threads.
    """

    def __init__(self, limit: int = 1000, lock_timeout: float = 30.0) -> None:
        self.limit = limit
        self.lock_timeout = lock_timeout
        self._wizards: OrderedDict[str, tuple[SignupWizard, threading.Lock]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._wizards)

    def add(self, wizard: SignupWizard) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._wizards[session_id] = (wizard, threading.Lock())
            while len(self._wizards) > self.limit:
                self._wizards.popitem(last=False)
        return session_id

    def _entry(self, session_id: str) -> tuple[SignupWizard, threading.Lock]:
        with self._lock:
            entry = self._wizards.get(session_id)
            if entry is not None:
                self._wizards.move_to_end(session_id)
        if entry is None:
            raise NotFound("Signup session not found")
        return entry

    def get(self, session_id: str) -> SignupWizard:
        return self._entry(session_id)[0]

    @contextmanager
    def hold(self, session_id: str) -> Iterator[SignupWizard]:
        """
        Yield the wizard while holding its session lock.

        :raises NotFound: If the session does not exist.
        :raises Conflict: If another request keeps the session busy for longer
            than ``lock_timeout`` seconds.
        """
        wizard, lock = self._entry(session_id)
        if not lock.acquire(timeout=self.lock_timeout):
            raise Conflict(
                "Another request is updating this signup session.", code="operation_in_progress"
            )
        try:
            yield wizard
        finally:
            lock.release()

    def discard(self, session_id: str) -> SignupWizard | None:
        with self._lock:
            entry = self._wizards.pop(session_id, None)
        return entry[0] if entry is not None else None


def init_app(app: Flask) -> None:
    """Register the gateway and the signup session registry.

    Parameters
    ----------
    app: flask.Flask
        Application whose ``SUBTRACK_*`` settings configure the gateway. An
        already registered gateway (e.g. a test double) is kept.
    """
    app.extensions.setdefault(
        GATEWAY_KEY,
        SupabaseGateway(
            url=app.config["SUBTRACK_SUPABASE_URL"],
            anon_key=app.config["SUBTRACK_SUPABASE_ANON_KEY"],
            timeout=float(app.config.get("HTTP_TIMEOUT", 10.0)),
        ),
    )
    app.extensions.setdefault(
        SIGNUP_SESSIONS_KEY,
        SignupSessions(
            int(app.config.get("SIGNUP_SESSION_LIMIT", 1000)),
            lock_timeout=float(app.config.get("SIGNUP_LOCK_TIMEOUT", 30.0)),
        ),
    )


def get_gateway() -> SupabaseGateway:
    """Return the gateway registered on the current application."""
    return current_app.extensions[GATEWAY_KEY]


def get_signup_sessions() -> SignupSessions:
    return current_app.extensions[SIGNUP_SESSIONS_KEY]
