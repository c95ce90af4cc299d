"""Profile endpoints for the signed-in user."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from flask import Blueprint, request

from subtrack.api.deps import Caller, authenticate, json_response, timing
from subtrack.core.extensions import get_gateway
from subtrack.schemas import ProfileSchema, ProfileUpdateSchema
from subtrack.services._shared.scope import TaskScope
from subtrack.services.profiles.service import ProfileService

bp = Blueprint("profile", __name__)

update_schema = ProfileUpdateSchema()
profile_schema = ProfileSchema()


@asynccontextmanager
async def _profiles(caller: Caller) -> AsyncIterator[ProfileService]:
    async with get_gateway().open_store(caller.access_token) as store:
        async with TaskScope("profiles") as scope:
            yield ProfileService(store, user=caller.user, scope=scope)


@bp.get("")
@timing
async def show_profile():
    """Return the caller's profile; the row is created on first access."""

    caller = await authenticate()
    async with _profiles(caller) as profiles:
        profile = await profiles.get()
    return json_response({"data": profile_schema.dump(profile)})


@bp.patch("")
@timing
async def update_profile():
    """Apply a partial edit, creating the row first when needed."""

    caller = await authenticate()
    changes = update_schema.load(request.get_json(silent=True) or {})
    async with _profiles(caller) as profiles:
        await profiles.get()
        profile = await profiles.update(changes)
    return json_response({"data": profile_schema.dump(profile)})
