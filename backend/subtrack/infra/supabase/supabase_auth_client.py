# comments in English; reST docstrings
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from subtrack.infra.supabase._http import DEFAULT_TIMEOUT, build_client, raise_for_response
from subtrack.services._shared.ports import (
    AuthEvent,
    AuthListener,
    AuthResult,
    AuthSession,
    AuthUser,
    IdentityProvider,
)

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/auth/v1"


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    return datetime.fromisoformat(str(value))


def parse_user(payload: Mapping[str, Any] | None) -> AuthUser | None:
    """Build an :class:`AuthUser` from a GoTrue user object."""
    if not payload or not payload.get("id"):
        return None
    return AuthUser(
        id=str(payload["id"]),
        email=payload.get("email"),
        email_confirmed_at=_parse_ts(payload.get("email_confirmed_at") or payload.get("confirmed_at")),
        metadata=dict(payload.get("user_metadata") or {}),
    )


def parse_session(payload: Mapping[str, Any] | None) -> AuthSession | None:
    """Build an :class:`AuthSession` when ``payload`` carries an access token."""
    if not payload or not payload.get("access_token"):
        return None
    user = parse_user(payload.get("user"))
    if user is None:
        return None
    return AuthSession(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        user=user,
        expires_at=_parse_ts(payload.get("expires_at")),
    )


class SupabaseAuthClient(IdentityProvider):
    """
    GoTrue-backed :class:`IdentityProvider`.

    Keeps the current session in memory and notifies subscribed listeners on
    every session change. A short-lived ``AsyncClient`` is opened per call, so
    one provider can outlive the event loop of any single request.

    :param base_url: Project URL (``https://<ref>.supabase.co``).
    :param anon_key: Public anon key sent as ``apikey``.
    :param timeout: Per-request timeout in seconds.
    :param transport: Optional httpx transport (tests use ``MockTransport``).
    :param session: Existing session to resume.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        session: AuthSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.transport = transport
        self._session = session
        self._listeners: list[AuthListener] = []

    # -------------------- helpers --------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with build_client(
            self.base_url, self.anon_key, timeout=self.timeout, transport=self.transport
        ) as client:
            return await client.request(method, f"{AUTH_PREFIX}{path}", **kwargs)

    def _bearer(self) -> dict[str, str]:
        if self._session is None:
            return {}
        return {"Authorization": f"Bearer {self._session.access_token}"}

    def _set_session(self, session: AuthSession | None, event: AuthEvent) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("auth.listener_failed event=%s", event.value)

    # -------------------- API ------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Mapping[str, Any],
        redirect_url: str | None = None,
    ) -> AuthResult:
        response = await self._request(
            "POST",
            "/signup",
            params={"redirect_to": redirect_url} if redirect_url else None,
            json={"email": email, "password": password, "data": dict(metadata)},
        )
        raise_for_response(response)
        payload = response.json()
        session = parse_session(payload)
        if session is not None:
            self._set_session(session, AuthEvent.SIGNED_IN)
            return AuthResult(user=session.user, session=session)
        # Confirmation pending: GoTrue returns the bare user object
        return AuthResult(user=parse_user(payload.get("user") or payload))

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        raise_for_response(response)
        session = parse_session(response.json())
        if session is not None:
            self._set_session(session, AuthEvent.SIGNED_IN)
        return AuthResult(user=session.user if session else None, session=session)

    def sign_in_with_oauth(self, provider: str, redirect_url: str | None = None) -> str:
        query = {"provider": provider}
        if redirect_url:
            query["redirect_to"] = redirect_url
        return f"{self.base_url}{AUTH_PREFIX}/authorize?{urlencode(query)}"

    async def resend_confirmation(self, email: str, redirect_url: str | None = None) -> None:
        response = await self._request(
            "POST",
            "/resend",
            params={"redirect_to": redirect_url} if redirect_url else None,
            json={"type": "signup", "email": email},
        )
        raise_for_response(response)

    async def get_session(self) -> AuthSession | None:
        return self._session

    async def get_user(self) -> AuthUser | None:
        if self._session is None:
            return None
        response = await self._request("GET", "/user", headers=self._bearer())
        raise_for_response(response)
        return parse_user(response.json())

    async def refresh_session(self) -> AuthSession | None:
        if self._session is None or not self._session.refresh_token:
            return None
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self._session.refresh_token},
        )
        raise_for_response(response)
        self._set_session(parse_session(response.json()), AuthEvent.TOKEN_REFRESHED)
        return self._session

    async def sign_out(self) -> None:
        if self._session is not None:
            response = await self._request("POST", "/logout", headers=self._bearer())
            # An already-expired token still counts as signed out
            if response.status_code != 401:
                raise_for_response(response)
        self._set_session(None, AuthEvent.SIGNED_OUT)

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def health(self) -> bool:
        """Return ``True`` when the GoTrue health endpoint answers 2xx."""
        response = await self._request("GET", "/health")
        return response.is_success

    async def user_from_token(self, access_token: str) -> AuthUser | None:
        """Resolve the user behind a bearer token issued by this project."""
        response = await self._request(
            "GET", "/user", headers={"Authorization": f"Bearer {access_token}"}
        )
        raise_for_response(response)
        return parse_user(response.json())
