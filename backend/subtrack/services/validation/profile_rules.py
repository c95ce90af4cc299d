"""Rules for profile edits."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from subtrack.services._shared.errors import FieldError
from subtrack.services.validation.rules import (
    FIRST_NAME_LABEL,
    LAST_NAME_LABEL,
    NAME_MAX_LENGTH,
    validate_name,
)
from subtrack.services.validation.subscription_rules import normalize_url, validate_url

USERNAME_PATTERN = re.compile(r"^[\w.\-]+$")
USERNAME_INVALID = "Usernames may only contain letters, numbers, dots, dashes and underscores."
USERNAME_TOO_LONG = f"Username must be at most {NAME_MAX_LENGTH} characters."

_URL_FIELDS = ("photo_url", "cover_photo_url")


def validate_username(username: str | None) -> str | None:
    if not username:
        return None  # optional
    if len(username) > NAME_MAX_LENGTH:
        return USERNAME_TOO_LONG
    if not USERNAME_PATTERN.fullmatch(username):
        return USERNAME_INVALID
    return None


def sanitize_profile_changes(changes: Mapping[str, Any]) -> dict[str, str | None]:
    """
    Trim text values, turn blanks into ``None`` and prefix bare image URLs.

    Only the keys present in ``changes`` are returned.
    """
    cleaned: dict[str, str | None] = {}
    for key, value in changes.items():
        text = "" if value is None else str(value).strip()
        if key in _URL_FIELDS and text:
            text = normalize_url(text)
        cleaned[key] = text or None
    return cleaned


def validate_profile_changes(changes: Mapping[str, str | None]) -> list[FieldError]:
    """
    Check a sanitized set of profile changes.

    Names stay required once they are sent; every other field may be cleared.
    """
    checks: list[tuple[str, str | None]] = []
    if "username" in changes:
        checks.append(("username", validate_username(changes["username"])))
    if "first_name" in changes:
        checks.append(("first_name", validate_name(changes["first_name"] or "", FIRST_NAME_LABEL)))
    if "last_name" in changes:
        checks.append(("last_name", validate_name(changes["last_name"] or "", LAST_NAME_LABEL)))
    for key in _URL_FIELDS:
        if key in changes:
            checks.append((key, validate_url(changes[key])))
    return [FieldError(name, message) for name, message in checks if message]
