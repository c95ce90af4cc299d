"""Authentication endpoints delegating to the hosted identity provider."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, request

from subtrack.api.deps import authenticate, json_response, no_content, timing
from subtrack.core.errors import APIError, NotFound, from_service_error
from subtrack.core.extensions import get_gateway
from subtrack.schemas import LoginSchema, SessionSchema
from subtrack.services._shared.errors import classify_error
from subtrack.services._shared.ports import AuthSession

log = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

login_schema = LoginSchema()
session_schema = SessionSchema()

OAUTH_PROVIDERS = frozenset({"google"})

UNCONFIRMED_MESSAGE = "Please confirm your email address before logging in."

# (substring, status, code, message) checked against the provider error text
_LOGIN_FAILURES: tuple[tuple[str, int, str, str], ...] = (
    (
        "invalid login credentials",
        401,
        "invalid_credentials",
        "Incorrect email or password. Please check and try again.",
    ),
    ("email not confirmed", 401, "email_not_confirmed", UNCONFIRMED_MESSAGE),
    (
        "too many requests",
        429,
        "too_many_requests",
        "Too many login attempts. Please wait a moment and try again.",
    ),
    (
        "user not found",
        401,
        "user_not_found",
        "This email address is not registered. Please sign up first.",
    ),
)


def login_error(exc: Exception) -> APIError:
    """Map a sign-in failure to a client-facing error."""

    lowered = str(exc).lower()
    for needle, status, code, message in _LOGIN_FAILURES:
        if needle in lowered:
            return APIError(message, status_code=status, code=code)
    return from_service_error(classify_error(exc))


@bp.post("/login")
@timing
async def login():
    """Exchange email and password for a provider session."""

    payload = login_schema.load(request.get_json(silent=True) or {})
    identity = get_gateway().identity()
    try:
        result = await identity.sign_in_with_password(payload["email"], payload["password"])
    except Exception as exc:
        raise login_error(exc) from exc
    if result.session is None:
        raise APIError(UNCONFIRMED_MESSAGE, status_code=401, code="email_not_confirmed")
    log.info("auth.login user_id=%s", result.session.user.id)
    return json_response({"data": session_schema.dump(result.session)})


@bp.get("/oauth/<provider>")
@timing
def oauth_url(provider: str):
    """Return the URL that starts the OAuth flow for ``provider``."""

    if provider not in OAUTH_PROVIDERS:
        raise NotFound(f"Unsupported OAuth provider '{provider}'")
    url = get_gateway().identity().sign_in_with_oauth(
        provider, current_app.config["SUBTRACK_AUTH_REDIRECT_URL"]
    )
    return json_response({"data": {"provider": provider, "url": url}})


@bp.post("/logout")
@timing
async def logout():
    """Invalidate the caller's session."""

    caller = await authenticate()
    identity = get_gateway().identity(
        AuthSession(access_token=caller.access_token, refresh_token=None, user=caller.user)
    )
    try:
        await identity.sign_out()
    except Exception as exc:
        raise from_service_error(classify_error(exc)) from exc
    return no_content()
