from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class AuthEvent(Enum):
    """Session lifecycle events emitted by an identity provider."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class AuthUser:
    """
    Identity record as returned by the provider.

    :ivar id: Provider-assigned user identifier.
    :ivar email: Login email.
    :ivar email_confirmed_at: Confirmation timestamp, ``None`` while unconfirmed.
    :ivar metadata: Free-form profile data stored with the identity.
    """

    id: str
    email: str | None = None
    email_confirmed_at: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_confirmed(self) -> bool:
        return self.email_confirmed_at is not None


@dataclass(frozen=True)
class AuthSession:
    """Active session (bearer + refresh token) for a user."""

    access_token: str
    refresh_token: str | None
    user: AuthUser
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of a sign-up or sign-in call.

    ``session`` is ``None`` when the provider requires the email to be
    confirmed before a session can be issued.
    """

    user: AuthUser | None
    session: AuthSession | None = None


AuthListener = Callable[[AuthEvent, AuthSession | None], None]


class IdentityProvider(Protocol):
    """
    Hosted identity & session provider.

    Implementations are asynchronous and raise on failure; callers classify the
    exception through :func:`subtrack.services._shared.errors.classify_error`.
    """

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Mapping[str, Any],
        redirect_url: str | None = None,
    ) -> AuthResult:
        """Create the account and send the confirmation email."""

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        """Exchange credentials for a session."""

    def sign_in_with_oauth(self, provider: str, redirect_url: str | None = None) -> str:
        """Return the URL the browser must visit to start the OAuth dance."""

    async def resend_confirmation(self, email: str, redirect_url: str | None = None) -> None:
        """Send the sign-up confirmation email again."""

    async def get_session(self) -> AuthSession | None:
        """Return the current session, if any."""

    async def get_user(self) -> AuthUser | None:
        """Fetch the user behind the current session, if any."""

    async def refresh_session(self) -> AuthSession | None:
        """Rotate the current session using its refresh token."""

    async def sign_out(self) -> None:
        """Invalidate the current session."""

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to :class:`AuthEvent`; returns an unsubscribe callable."""
