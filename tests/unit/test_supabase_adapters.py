"""Unit tests for the Supabase adapters using ``httpx.MockTransport``."""

from __future__ import annotations

import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from subtrack.infra.supabase._http import SupabaseError, build_client
from subtrack.infra.supabase.supabase_auth_client import SupabaseAuthClient, parse_session, parse_user
from subtrack.infra.supabase.supabase_table_store import SupabaseTableStore
from subtrack.services._shared.ports import AuthEvent, AuthSession, AuthUser

BASE_URL = "https://project.supabase.co"
ANON_KEY = "anon-" + "k" * 60

USER_JSON = {
    "id": "8d0f1c1e-0000-4000-8000-000000000001",
    "email": "member@example.com",
    "email_confirmed_at": "2024-01-02T03:04:05+00:00",
    "user_metadata": {"first_name": "Ada"},
}
SESSION_JSON = {
    "access_token": "access-1",
    "refresh_token": "refresh-1",
    "expires_at": 1_704_067_200,
    "user": USER_JSON,
}


class Recorder:
    """Collect requests and answer with queued responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responses.pop(0)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def query(self, index: int = -1) -> dict[str, list[str]]:
        return parse_qs(urlsplit(str(self.requests[index].url)).query)


def _store(recorder: Recorder, token: str = "user-token") -> SupabaseTableStore:
    client = build_client(BASE_URL, ANON_KEY, access_token=token, transport=httpx.MockTransport(recorder))
    return SupabaseTableStore(client)


def _auth(recorder: Recorder, **kwargs) -> SupabaseAuthClient:
    return SupabaseAuthClient(BASE_URL + "/", ANON_KEY, transport=httpx.MockTransport(recorder), **kwargs)


# --------------------------------------------------------------------------- #
# Table store
# --------------------------------------------------------------------------- #


class TestTableStore:
    async def test_select_encodes_filters_order_and_limit(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": 1}]))
        async with _store(recorder) as store:
            rows = await store.select(
                "notifications",
                filters={"user_id": "u1", "is_active": True},
                order_by="timestamp",
                descending=True,
                limit=50,
            )

        assert rows == [{"id": 1}]
        request = recorder.last
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/notifications"
        assert recorder.query() == {
            "select": ["*"],
            "user_id": ["eq.u1"],
            "is_active": ["eq.true"],
            "order": ["timestamp.desc"],
            "limit": ["50"],
        }
        assert request.headers["apikey"] == ANON_KEY
        assert request.headers["Authorization"] == "Bearer user-token"

    async def test_insert_returns_the_single_row(self):
        recorder = Recorder(httpx.Response(201, json=[{"id": 9, "name": "Netflix"}]))
        async with _store(recorder) as store:
            row = await store.insert("subscriptions", {"name": "Netflix"})

        assert row == {"id": 9, "name": "Netflix"}
        assert recorder.last.headers["Prefer"] == "return=representation"
        assert json.loads(recorder.last.content) == {"name": "Netflix"}

    async def test_update_without_match_is_not_found(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        async with _store(recorder) as store:
            with pytest.raises(SupabaseError) as excinfo:
                await store.update("subscriptions", {"price": 1}, filters={"id": "9", "user_id": "u1"})

        assert excinfo.value.code == "PGRST116"
        assert recorder.last.method == "PATCH"
        assert recorder.query() == {"id": ["eq.9"], "user_id": ["eq.u1"]}

    async def test_delete(self):
        recorder = Recorder(httpx.Response(204))
        async with _store(recorder) as store:
            await store.delete("notifications", filters={"user_id": "u1"})
        assert recorder.last.method == "DELETE"

    async def test_error_body_becomes_supabase_error(self):
        body = {"code": "23505", "message": "duplicate key value violates unique constraint", "details": None}
        recorder = Recorder(httpx.Response(409, json=body))
        async with _store(recorder) as store:
            with pytest.raises(SupabaseError) as excinfo:
                await store.insert("subscriptions", {"name": "x"})

        assert excinfo.value.code == "23505"
        assert excinfo.value.status == 409
        assert "duplicate key" in str(excinfo.value)

    async def test_non_json_error_body(self):
        recorder = Recorder(httpx.Response(502, text="Bad Gateway"))
        async with _store(recorder) as store:
            with pytest.raises(SupabaseError) as excinfo:
                await store.select("subscriptions", filters={})
        assert excinfo.value.status == 502
        assert str(excinfo.value) == "Bad Gateway"


# --------------------------------------------------------------------------- #
# Auth client
# --------------------------------------------------------------------------- #


class TestParsing:
    def test_parse_user(self):
        user = parse_user(USER_JSON)
        assert user.id == USER_JSON["id"]
        assert user.is_confirmed
        assert user.metadata == {"first_name": "Ada"}

    def test_parse_session_needs_token_and_user(self):
        session = parse_session(SESSION_JSON)
        assert session.access_token == "access-1"
        assert session.expires_at.year == 2024
        assert parse_session({"user": USER_JSON}) is None
        assert parse_user({}) is None


class TestAuthClient:
    async def test_sign_up_pending_confirmation(self):
        pending_user = {**USER_JSON, "email_confirmed_at": None}
        recorder = Recorder(httpx.Response(200, json=pending_user))
        client = _auth(recorder)

        result = await client.sign_up(
            "member@example.com", "Secret123", {"first_name": "Ada"}, "http://localhost:3000/cb"
        )

        assert result.session is None
        assert result.user.email == "member@example.com"
        assert not result.user.is_confirmed
        request = recorder.last
        assert request.url.path == "/auth/v1/signup"
        assert recorder.query() == {"redirect_to": ["http://localhost:3000/cb"]}
        assert json.loads(request.content) == {
            "email": "member@example.com",
            "password": "Secret123",
            "data": {"first_name": "Ada"},
        }

    async def test_sign_in_stores_session_and_notifies(self):
        recorder = Recorder(httpx.Response(200, json=SESSION_JSON))
        client = _auth(recorder)
        events: list[AuthEvent] = []
        unsubscribe = client.on_auth_state_change(lambda event, _session: events.append(event))

        result = await client.sign_in_with_password("member@example.com", "Secret123")

        assert result.session.access_token == "access-1"
        assert await client.get_session() == result.session
        assert recorder.query() == {"grant_type": ["password"]}
        assert events == [AuthEvent.SIGNED_IN]
        unsubscribe()

    async def test_listener_failure_does_not_break_sign_in(self):
        recorder = Recorder(httpx.Response(200, json=SESSION_JSON))
        client = _auth(recorder)

        def _broken(event, session):
            raise RuntimeError("listener bug")

        client.on_auth_state_change(_broken)
        result = await client.sign_in_with_password("member@example.com", "Secret123")
        assert result.session is not None

    async def test_invalid_credentials(self):
        body = {"error": "invalid_grant", "error_description": "Invalid login credentials"}
        recorder = Recorder(httpx.Response(400, json=body))
        client = _auth(recorder)

        with pytest.raises(SupabaseError) as excinfo:
            await client.sign_in_with_password("member@example.com", "nope")
        assert str(excinfo.value) == "Invalid login credentials"

    def test_oauth_url(self):
        client = _auth(Recorder())
        url = client.sign_in_with_oauth("google", "http://localhost:3000/#/auth/callback")
        assert url.startswith(f"{BASE_URL}/auth/v1/authorize?provider=google")
        assert "redirect_to=http%3A%2F%2Flocalhost%3A3000%2F%23%2Fauth%2Fcallback" in url

    async def test_get_user_uses_session_bearer(self):
        session = AuthSession("access-1", "refresh-1", AuthUser(id="u1"))
        recorder = Recorder(httpx.Response(200, json=USER_JSON))
        client = _auth(recorder, session=session)

        user = await client.get_user()

        assert user.email == "member@example.com"
        assert recorder.last.headers["Authorization"] == "Bearer access-1"

    async def test_get_user_without_session(self):
        recorder = Recorder()
        assert await _auth(recorder).get_user() is None
        assert recorder.requests == []

    async def test_refresh_session(self):
        old = AuthSession("access-0", "refresh-0", AuthUser(id="u1"))
        recorder = Recorder(httpx.Response(200, json=SESSION_JSON))
        client = _auth(recorder, session=old)
        events: list[AuthEvent] = []
        client.on_auth_state_change(lambda event, _s: events.append(event))

        session = await client.refresh_session()

        assert session.access_token == "access-1"
        assert json.loads(recorder.last.content) == {"refresh_token": "refresh-0"}
        assert events == [AuthEvent.TOKEN_REFRESHED]

    async def test_sign_out_tolerates_expired_token(self):
        session = AuthSession("expired", None, AuthUser(id="u1"))
        recorder = Recorder(httpx.Response(401, json={"msg": "JWT expired"}))
        client = _auth(recorder, session=session)
        events: list[AuthEvent] = []
        client.on_auth_state_change(lambda event, _s: events.append(event))

        await client.sign_out()

        assert await client.get_session() is None
        assert events == [AuthEvent.SIGNED_OUT]

    async def test_resend_and_health(self):
        recorder = Recorder(httpx.Response(200, json={}), httpx.Response(200, json={"name": "GoTrue"}))
        client = _auth(recorder)

        await client.resend_confirmation("member@example.com")
        assert json.loads(recorder.requests[0].content) == {"type": "signup", "email": "member@example.com"}
        assert await client.health() is True

    async def test_user_from_token(self):
        recorder = Recorder(httpx.Response(401, json={"msg": "invalid JWT", "error_code": "bad_jwt"}))
        client = _auth(recorder)

        with pytest.raises(SupabaseError) as excinfo:
            await client.user_from_token("forged")
        assert excinfo.value.status == 401
        assert excinfo.value.code == "bad_jwt"
        assert recorder.last.headers["Authorization"] == "Bearer forged"
