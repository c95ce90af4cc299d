"""In-memory doubles for the identity provider, the table store and the gateway."""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from subtrack.infra.supabase._http import SupabaseError
from subtrack.services._shared.ports import (
    AuthEvent,
    AuthListener,
    AuthResult,
    AuthSession,
    AuthUser,
)

_EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    return all(str(row.get(key)) == str(value) for key, value in filters.items())


class _Scripted:
    """Failure injection and call gating shared by the doubles."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self._gates: dict[str, asyncio.Event] = {}

    def fail(self, operation: str, *errors: BaseException) -> None:
        """Raise ``errors`` (one per call, in order) from the next ``operation`` calls."""
        self._failures[operation].extend(errors)

    def hold(self, operation: str) -> asyncio.Event:
        """Block ``operation`` until the returned event is set."""
        event = asyncio.Event()
        self._gates[operation] = event
        return event

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        if self._failures[operation]:
            raise self._failures[operation].pop(0)


class InMemoryTableStore(_Scripted):
    """Dict-backed :class:`TableStore` mimicking PostgREST's row semantics."""

    def __init__(self) -> None:
        super().__init__()
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._ids = itertools.count(1000)

    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        self.tables[table].extend(dict(row) for row in rows)

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("select")
        rows = [dict(row) for row in self.tables[table] if _matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: str(row.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        await self._enter("insert")
        n = next(self._ids)
        row = dict(values)
        row.setdefault("id", str(n))
        stamp = (_EPOCH + timedelta(seconds=n)).isoformat()
        row.setdefault("created_at", stamp)
        row.setdefault("updated_at", stamp)
        self.tables[table].append(row)
        return dict(row)

    async def update(
        self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]
    ) -> dict[str, Any]:
        await self._enter("update")
        matches = [row for row in self.tables[table] if _matches(row, filters)]
        if len(matches) != 1:
            raise SupabaseError("JSON object requested, multiple (or no) rows returned", code="PGRST116", status=406)
        matches[0].update(values)
        return dict(matches[0])

    async def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
        await self._enter("delete")
        self.tables[table] = [row for row in self.tables[table] if not _matches(row, filters)]


class FakeIdentityProvider(_Scripted):
    """
    Identity provider double.

    Accounts created through :meth:`sign_up` stay unconfirmed until
    :meth:`confirm` is called, unless ``auto_confirm`` is set.
    """

    def __init__(self, *, auto_confirm: bool = False) -> None:
        super().__init__()
        self.auto_confirm = auto_confirm
        self.accounts: dict[str, tuple[str, AuthUser]] = {}
        self.sign_up_args: list[tuple[str, str, dict[str, Any], str | None]] = []
        self.session: AuthSession | None = None
        self.user: AuthUser | None = None
        self._listeners: list[AuthListener] = []

    def confirm(self, email: str) -> AuthUser:
        password, user = self.accounts[email]
        confirmed = dataclasses.replace(user, email_confirmed_at=datetime.now(UTC))
        self.accounts[email] = (password, confirmed)
        if self.user is not None and self.user.email == email:
            self.user = confirmed
        return confirmed

    def _issue(self, user: AuthUser) -> AuthSession:
        session = AuthSession(access_token=f"token-{user.id}", refresh_token="refresh", user=user)
        self.session = session
        for listener in list(self._listeners):
            listener(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, email, password, metadata, redirect_url=None) -> AuthResult:
        await self._enter("sign_up")
        self.sign_up_args.append((email, password, dict(metadata), redirect_url))
        if email in self.accounts:
            raise SupabaseError("User already registered", code="user_already_exists", status=422)
        user = AuthUser(id=str(uuid.uuid4()), email=email, metadata=dict(metadata))
        self.accounts[email] = (password, user)
        self.user = user
        if self.auto_confirm:
            user = self.confirm(email)
            return AuthResult(user=user, session=self._issue(user))
        return AuthResult(user=user)

    async def sign_in_with_password(self, email, password) -> AuthResult:
        await self._enter("sign_in_with_password")
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise SupabaseError("Invalid login credentials", code="invalid_credentials", status=400)
        user = account[1]
        if not user.is_confirmed:
            return AuthResult(user=user)
        return AuthResult(user=user, session=self._issue(user))

    def sign_in_with_oauth(self, provider, redirect_url=None) -> str:
        return f"https://identity.test/authorize?provider={provider}&redirect_to={redirect_url}"

    async def resend_confirmation(self, email, redirect_url=None) -> None:
        await self._enter("resend_confirmation")

    async def get_session(self) -> AuthSession | None:
        await self._enter("get_session")
        return self.session

    async def get_user(self) -> AuthUser | None:
        await self._enter("get_user")
        return self.user

    async def refresh_session(self) -> AuthSession | None:
        return self.session

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self.session = None
        for listener in list(self._listeners):
            listener(AuthEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)


class FakeGateway:
    """Stand-in for :class:`subtrack.core.extensions.SupabaseGateway`."""

    def __init__(
        self,
        identity: FakeIdentityProvider | None = None,
        store: InMemoryTableStore | None = None,
    ) -> None:
        self.identity_provider = identity or FakeIdentityProvider()
        self.store = store or InMemoryTableStore()
        self.users: dict[str, AuthUser] = {}
        self.opened_with: list[str] = []

    def login(self, user_id: str = "user-1", email: str = "owner@example.com") -> str:
        """Register a bearer token for a confirmed user and return it."""
        token = f"token-{user_id}"
        self.users[token] = AuthUser(id=user_id, email=email, email_confirmed_at=_EPOCH)
        return token

    def identity(self, session: AuthSession | None = None) -> FakeIdentityProvider:
        if session is not None:
            self.identity_provider.session = session
        return self.identity_provider

    async def resolve_user(self, access_token: str) -> AuthUser | None:
        return self.users.get(access_token)

    @asynccontextmanager
    async def open_store(self, access_token: str) -> AsyncIterator[InMemoryTableStore]:
        self.opened_with.append(access_token)
        yield self.store
