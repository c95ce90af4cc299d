"""Integration tests for the profile endpoints."""

from __future__ import annotations

from subtrack.infra.supabase._http import SupabaseError
from tests.factories.rows import ProfileRowFactory
from tests.helpers.http import assert_problem

BASE = "/api/v1/profile"


def test_requires_authentication(client):
    assert_problem(client.get(BASE), 401, "unauthorized")


def test_first_access_creates_the_profile(client, gateway, auth_header):
    resp = client.get(BASE, headers=auth_header)

    assert resp.status_code == 200, resp.get_data(as_text=True)
    data = resp.get_json()["data"]
    assert data["id"] == "user-1"
    assert data["email"] == "owner@example.com"
    assert data["display_name"] == "owner@example.com"
    assert [row["id"] for row in gateway.store.tables["profiles"]] == ["user-1"]


def test_returns_the_stored_profile(client, gateway, auth_header):
    gateway.store.seed("profiles", ProfileRowFactory(first_name="Ada", last_name="Lovelace"))

    data = client.get(BASE, headers=auth_header).get_json()["data"]

    assert data["display_name"] == "Ada Lovelace"
    assert gateway.store.count("insert") == 0


def test_update(client, gateway, auth_header):
    gateway.store.seed("profiles", ProfileRowFactory(username="old"))

    resp = client.patch(
        BASE, json={"username": "ada", "cover_photo_url": "img.test/cover.png"}, headers=auth_header
    )

    assert resp.status_code == 200, resp.get_data(as_text=True)
    data = resp.get_json()["data"]
    assert data["username"] == "ada"
    assert data["cover_photo_url"] == "https://img.test/cover.png"


def test_update_creates_a_missing_profile_first(client, gateway, auth_header):
    resp = client.patch(BASE, json={"first_name": "Ada"}, headers=auth_header)

    assert resp.status_code == 200
    assert gateway.store.tables["profiles"][0]["first_name"] == "Ada"


def test_update_rejects_invalid_values(client, gateway, auth_header):
    gateway.store.seed("profiles", ProfileRowFactory())

    body = assert_problem(
        client.patch(BASE, json={"username": "two words"}, headers=auth_header),
        422,
        "validation_error",
    )
    assert set(body["details"]["errors"]) == {"username"}


def test_update_rejects_unknown_and_empty_payloads(client, gateway, auth_header):
    assert_problem(client.patch(BASE, json={"email": "x@example.com"}, headers=auth_header), 422)
    assert_problem(client.patch(BASE, json={}, headers=auth_header), 422, "validation_error")


def test_permission_errors_are_forbidden(client, gateway, auth_header):
    gateway.store.fail("select", SupabaseError("permission denied for table profiles", code="42501"))

    assert_problem(client.get(BASE, headers=auth_header), 403, "forbidden")
