"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class LoginSchema(Schema):
    """Input payload for authenticating with email and password."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class AuthUserSchema(Schema):
    id = fields.String()
    email = fields.String(allow_none=True)
    email_confirmed_at = fields.DateTime(allow_none=True)
    metadata = fields.Dict()


class SessionSchema(Schema):
    """Response payload carrying the provider session."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(allow_none=True)
    token_type = fields.Constant("bearer")
    expires_at = fields.DateTime(allow_none=True)
    user = fields.Nested(AuthUserSchema)
