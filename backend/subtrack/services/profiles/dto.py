"""
DTOs for the profile service.

A profile is the user's row in the ``profiles`` table, keyed by the identity
provider's user id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# Columns a user may change through :meth:`ProfileService.update`
EDITABLE_FIELDS = ("username", "first_name", "last_name", "photo_url", "cover_photo_url")


@dataclass(frozen=True, slots=True)
class Profile:
    """
    Public profile of a user.

    :ivar id: Identity-provider user id (also the row key).
    :ivar email: Login email copied when the row is created.
    :ivar photo_url: Avatar image URL.
    :ivar cover_photo_url: Cover image URL.
    """

    id: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    photo_url: str | None = None
    cover_photo_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username or self.email or ""
