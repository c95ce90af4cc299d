"""
ProfileService
==============

Reads and edits the signed-in user's row in the ``profiles`` table.

- :meth:`ProfileService.get` creates the row on first access, seeded from the
  identity provider's user metadata (signup fields or the OAuth ``full_name``).
- :meth:`ProfileService.update` applies a partial edit of the editable columns.

Notes
-----
- Failures are raised as :class:`~subtrack.services._shared.errors.ServiceError`
  subclasses; raw driver exceptions never leave the service.
- Store calls run inside the service's :class:`TaskScope`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from subtrack.schemas.profile import load_profile
from subtrack.services._shared.errors import (
    AuthRequiredError,
    CancelledOperation,
    ConflictError,
    FieldValidationError,
    NotFoundError,
    ServiceError,
    classify_error,
)
from subtrack.services._shared.observability import ObservabilityContext, maybe_timed
from subtrack.services._shared.ports import AuthUser, TableStore
from subtrack.services._shared.scope import ScopeClosed, TaskScope
from subtrack.services.profiles.dto import EDITABLE_FIELDS, Profile
from subtrack.services.validation.profile_rules import (
    sanitize_profile_changes,
    validate_profile_changes,
)

logger = logging.getLogger(__name__)

TABLE = "profiles"


def _names_from_metadata(metadata: Mapping[str, Any]) -> tuple[str, str]:
    first = str(metadata.get("first_name") or "").strip()
    last = str(metadata.get("last_name") or "").strip()
    if first or last:
        return first, last
    # OAuth providers send one display name
    full = str(metadata.get("full_name") or metadata.get("name") or "").strip()
    first, _, last = full.partition(" ")
    return first, last.strip()


def initial_profile_row(user: AuthUser) -> dict[str, Any]:
    """Column values for a user's first ``profiles`` row."""
    first, last = _names_from_metadata(user.metadata)
    photo = user.metadata.get("avatar_url") or user.metadata.get("picture") or None
    return {
        "id": user.id,
        "email": user.email or None,
        "first_name": first or None,
        "last_name": last or None,
        "photo_url": photo,
    }


class ProfileService:
    """
    Profile access for one authenticated user.

    :param store: Table store acting with the user's token.
    :param user: Signed-in user; every call raises :class:`AuthRequiredError`
        without one.
    :param scope: Cancellation scope owning the store calls.
    """

    def __init__(
        self,
        store: TableStore,
        *,
        user: AuthUser | None,
        scope: TaskScope | None = None,
        observer: ObservabilityContext | None = None,
    ) -> None:
        self.store = store
        self.user = user
        self.scope = scope or TaskScope("profiles")
        self.observer = observer

    async def get(self) -> Profile:
        """
        Return the user's profile, creating it when the row does not exist yet.

        :raises AuthRequiredError: Without a signed-in user.
        :raises ServiceError: Classified store failure.
        """
        user = self._require_user()
        try:
            with maybe_timed(self.observer, "profiles.get"):
                profile = await self._fetch(user.id)
                if profile is None:
                    profile = await self._create(user)
            return profile
        except ScopeClosed as exc:
            raise CancelledOperation() from exc
        except Exception as exc:
            raise self._fail("get", exc) from exc

    async def update(self, changes: Mapping[str, Any]) -> Profile:
        """
        Apply a partial edit and return the stored profile.

        :param changes: Subset of ``username``, ``first_name``, ``last_name``,
            ``photo_url`` and ``cover_photo_url``.
        :raises FieldValidationError: When a value breaks the profile rules;
            nothing is sent to the store.
        :raises NotFoundError: When the profile row does not exist.
        """
        user = self._require_user()
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise FieldValidationError({key: "This field cannot be changed." for key in unknown})
        cleaned = sanitize_profile_changes(changes)
        errors = validate_profile_changes(cleaned)
        if errors:
            raise FieldValidationError(errors)

        values = {**cleaned, "updated_at": datetime.now(UTC).isoformat()}
        try:
            with maybe_timed(self.observer, "profiles.update"):
                row = await self.scope.run(self.store.update(TABLE, values, filters={"id": user.id}))
        except ScopeClosed as exc:
            raise CancelledOperation() from exc
        except Exception as exc:
            err = self._fail("update", exc)
            if isinstance(err, NotFoundError):
                raise NotFoundError("Your profile could not be found.") from exc
            raise err from exc
        logger.info("profiles.updated fields=%s", ",".join(sorted(cleaned)))
        return load_profile(row)

    async def aclose(self) -> None:
        await self.scope.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require_user(self) -> AuthUser:
        if self.scope.closed:
            raise CancelledOperation()
        if self.user is None:
            raise AuthRequiredError()
        return self.user

    async def _fetch(self, user_id: str) -> Profile | None:
        rows = await self.scope.run(self.store.select(TABLE, filters={"id": user_id}, limit=1))
        return load_profile(rows[0]) if rows else None

    async def _create(self, user: AuthUser) -> Profile:
        try:
            row = await self.scope.run(self.store.insert(TABLE, initial_profile_row(user)))
        except ScopeClosed:
            raise
        except Exception as exc:
            # a concurrent request created the row first
            if isinstance(classify_error(exc), ConflictError):
                existing = await self._fetch(user.id)
                if existing is not None:
                    return existing
            raise
        logger.info("profiles.created")
        return load_profile(row)

    def _fail(self, operation: str, exc: Exception) -> ServiceError:
        err = classify_error(exc)
        logger.error(
            "profiles.%s_failed: %s", operation, exc, extra={"operation": f"profiles.{operation}"}
        )
        if self.observer is not None:
            self.observer.record_error(f"profiles.{operation}", exc)
        return err
