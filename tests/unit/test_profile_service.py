"""Unit tests for :class:`ProfileService` and the profile rules."""

from __future__ import annotations

import pytest

from subtrack.infra.supabase._http import SupabaseError
from subtrack.services._shared.errors import (
    AuthRequiredError,
    CancelledOperation,
    FieldValidationError,
    NotFoundError,
    TransientError,
)
from subtrack.services._shared.ports import AuthUser
from subtrack.services.profiles.service import TABLE, ProfileService, initial_profile_row
from subtrack.services.validation.profile_rules import (
    USERNAME_INVALID,
    sanitize_profile_changes,
    validate_profile_changes,
)
from tests.factories.rows import ProfileRowFactory

USER = AuthUser(
    id="user-1",
    email="owner@example.com",
    metadata={"first_name": "Ada", "last_name": "Lovelace"},
)


@pytest.fixture()
async def profiles(store):
    service = ProfileService(store, user=USER)
    yield service
    await service.aclose()


class TestInitialRow:
    def test_uses_signup_names(self):
        row = initial_profile_row(USER)
        assert row == {
            "id": "user-1",
            "email": "owner@example.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "photo_url": None,
        }

    def test_splits_the_oauth_display_name(self):
        user = AuthUser(
            id="g-1",
            email="g@example.com",
            metadata={"full_name": "Grace Brewster Hopper", "picture": "https://img.test/g.png"},
        )
        row = initial_profile_row(user)
        assert (row["first_name"], row["last_name"]) == ("Grace", "Brewster Hopper")
        assert row["photo_url"] == "https://img.test/g.png"

    def test_without_metadata(self):
        row = initial_profile_row(AuthUser(id="u"))
        assert row["first_name"] is None
        assert row["email"] is None


class TestGet:
    async def test_returns_the_existing_row(self, profiles, store):
        store.seed(TABLE, ProfileRowFactory(username="ada"))

        profile = await profiles.get()

        assert profile.id == "user-1"
        assert profile.username == "ada"
        assert store.count("insert") == 0

    async def test_creates_the_row_on_first_access(self, profiles, store):
        profile = await profiles.get()

        assert profile.first_name == "Ada"
        assert profile.display_name == "Ada Lovelace"
        assert [row["id"] for row in store.tables[TABLE]] == ["user-1"]

    async def test_concurrent_creation_falls_back_to_the_stored_row(self, profiles, store, monkeypatch):
        store.fail("insert", SupabaseError("duplicate key value", code="23505", status=409))
        select = store.select

        async def _select(table, **kwargs):
            # another request stores the row between the lookup and the insert
            if store.count("select") == 1:
                store.seed(TABLE, ProfileRowFactory(first_name="Racer"))
            return await select(table, **kwargs)

        monkeypatch.setattr(store, "select", _select)

        profile = await profiles.get()

        assert profile.first_name == "Racer"
        assert store.count("select") == 2

    async def test_store_failures_are_classified(self, profiles, store):
        store.fail("select", SupabaseError("bad gateway", status=502))

        with pytest.raises(TransientError):
            await profiles.get()

    async def test_requires_a_user(self, store):
        with pytest.raises(AuthRequiredError):
            await ProfileService(store, user=None).get()

    async def test_closed_service(self, profiles):
        await profiles.aclose()
        with pytest.raises(CancelledOperation):
            await profiles.get()


class TestUpdate:
    async def test_applies_a_partial_edit(self, profiles, store):
        store.seed(TABLE, ProfileRowFactory(first_name="Old", last_name="Name"))

        profile = await profiles.update({"first_name": "  New ", "photo_url": "img.test/a.png"})

        assert profile.first_name == "New"
        assert profile.last_name == "Name"
        assert profile.photo_url == "https://img.test/a.png"
        assert store.tables[TABLE][0]["updated_at"] != "2024-01-01T00:00:00+00:00"

    async def test_blank_optional_fields_are_cleared(self, profiles, store):
        store.seed(TABLE, ProfileRowFactory(cover_photo_url="https://img.test/c.png"))

        profile = await profiles.update({"cover_photo_url": "  "})

        assert profile.cover_photo_url is None

    async def test_invalid_values_never_reach_the_store(self, profiles, store):
        with pytest.raises(FieldValidationError) as excinfo:
            await profiles.update({"username": "two words", "first_name": ""})

        assert excinfo.value.as_dict() == {
            "username": USERNAME_INVALID,
            "first_name": "Please enter your first name.",
        }
        assert store.count("update") == 0

    async def test_rejects_fields_outside_the_editable_set(self, profiles, store):
        with pytest.raises(FieldValidationError) as excinfo:
            await profiles.update({"email": "x@example.com"})

        assert set(excinfo.value.as_dict()) == {"email"}
        assert store.count("update") == 0

    async def test_missing_row(self, profiles):
        with pytest.raises(NotFoundError):
            await profiles.update({"username": "ada"})


class TestRules:
    def test_sanitize_keeps_only_sent_keys(self):
        assert sanitize_profile_changes({"username": " ada ", "last_name": None}) == {
            "username": "ada",
            "last_name": None,
        }

    @pytest.mark.parametrize(
        ("changes", "fields"),
        [
            ({"username": None}, set()),
            ({"username": "a" * 51}, {"username"}),
            ({"last_name": None}, {"last_name"}),
            ({"photo_url": "https://exa mple.com"}, {"photo_url"}),
            ({"cover_photo_url": None}, set()),
        ],
    )
    def test_validate(self, changes, fields):
        assert {err.field for err in validate_profile_changes(changes)} == fields
