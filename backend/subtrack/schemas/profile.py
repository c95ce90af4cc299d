"""Profile schemas."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, validates_schema

from subtrack.services.profiles.dto import EDITABLE_FIELDS, Profile


class ProfileRecordSchema(Schema):
    """Normalize one ``profiles`` row into a :class:`Profile`."""

    class Meta:
        unknown = EXCLUDE

    id = fields.Raw(required=True)
    username = fields.String(allow_none=True, load_default=None)
    first_name = fields.String(allow_none=True, load_default=None)
    last_name = fields.String(allow_none=True, load_default=None)
    email = fields.String(allow_none=True, load_default=None)
    photo_url = fields.String(allow_none=True, load_default=None)
    cover_photo_url = fields.String(allow_none=True, load_default=None)
    created_at = fields.DateTime(allow_none=True, load_default=None)
    updated_at = fields.DateTime(allow_none=True, load_default=None)

    @post_load
    def make_profile(self, data: dict[str, Any], **_: Any) -> Profile:
        return Profile(**{**data, "id": str(data["id"])})


_record_schema = ProfileRecordSchema()


def load_profile(row: Mapping[str, Any]) -> Profile:
    """Normalize a single row; raises :class:`marshmallow.ValidationError` when malformed."""
    return _record_schema.load(row)


class ProfileUpdateSchema(Schema):
    """Partial profile edit; absent keys are left unchanged."""

    username = fields.String(allow_none=True)
    first_name = fields.String(allow_none=True)
    last_name = fields.String(allow_none=True)
    photo_url = fields.String(allow_none=True)
    cover_photo_url = fields.String(allow_none=True)

    @validates_schema
    def require_a_change(self, data: dict[str, Any], **_: Any) -> None:
        if not data:
            raise ValidationError(f"Send at least one of: {', '.join(EDITABLE_FIELDS)}.")


class ProfileSchema(Schema):
    id = fields.String()
    username = fields.String(allow_none=True)
    first_name = fields.String(allow_none=True)
    last_name = fields.String(allow_none=True)
    display_name = fields.String()
    email = fields.String(allow_none=True)
    photo_url = fields.String(allow_none=True)
    cover_photo_url = fields.String(allow_none=True)
    created_at = fields.DateTime(allow_none=True)
    updated_at = fields.DateTime(allow_none=True)
