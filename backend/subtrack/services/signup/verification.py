"""
Email verification step of the signup wizard.

Creates the account through the identity provider (which sends the
confirmation email), lets the user resend it, and polls whether the address
has been confirmed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from subtrack.services._shared.errors import CancelledOperation, classify_error
from subtrack.services._shared.observability import ObservabilityContext, maybe_timed
from subtrack.services._shared.ports import IdentityProvider
from subtrack.services._shared.scope import ScopeClosed, TaskScope
from subtrack.services.signup.dto import SignupDraft

logger = logging.getLogger(__name__)


class VerificationStatus(Enum):
    NOT_SENT = "not_sent"
    PENDING = "pending"
    VERIFIED = "verified"
    ERROR = "error"


# Allowed moves; VERIFIED is terminal for the sub-flow
_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.NOT_SENT: frozenset(
        {VerificationStatus.PENDING, VerificationStatus.VERIFIED, VerificationStatus.ERROR}
    ),
    VerificationStatus.PENDING: frozenset(
        {VerificationStatus.PENDING, VerificationStatus.VERIFIED, VerificationStatus.ERROR}
    ),
    VerificationStatus.ERROR: frozenset(
        {VerificationStatus.PENDING, VerificationStatus.VERIFIED, VerificationStatus.ERROR}
    ),
    VerificationStatus.VERIFIED: frozenset({VerificationStatus.VERIFIED}),
}


class NoticeKind(Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notice:
    """Inline status text with an explicit meaning (informational vs. failure)."""

    kind: NoticeKind
    message: str

    @property
    def is_error(self) -> bool:
        return self.kind is NoticeKind.ERROR


RESEND_SUCCESS = "The verification email has been sent again."

# (substring, friendly message) pairs checked against the provider's error text
_SIGNUP_MESSAGES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("already registered", "already been registered", "already exists"),
     "This email address is already registered. Try logging in instead."),
    (("invalid email", "unable to validate email", "email address is invalid"),
     "The email address is not valid."),
    (("weak password", "password should be", "password is too weak"),
     "The password is too weak. Choose a stronger password."),
    (("rate limit", "too many", "for security purposes"),
     "Too many attempts. Please wait a moment and try again."),
)


def friendly_signup_message(raw: str) -> str:
    """Map known identity-provider errors to friendlier text; fall back to ``raw``."""
    lowered = raw.lower()
    for needles, message in _SIGNUP_MESSAGES:
        if any(needle in lowered for needle in needles):
            return message
    return raw or "Something went wrong while creating your account."


class VerificationFlow:
    """
    Status machine for the verification step.

    ``NOT_SENT → PENDING ⇄ ERROR`` and ``PENDING → VERIFIED``. The wizard may
    leave the step once at least one :meth:`send` succeeded and the status is
    not ``ERROR``.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        draft: Callable[[], SignupDraft],
        *,
        redirect_url: str | None = None,
        scope: TaskScope | None = None,
        observer: ObservabilityContext | None = None,
    ) -> None:
        self.identity = identity
        self._draft = draft
        self.redirect_url = redirect_url
        self.scope = scope or TaskScope("verification")
        self.observer = observer
        self.status = VerificationStatus.NOT_SENT
        self.error_message: str | None = None
        self.email_sent = False
        self.attempts = 0

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def can_proceed(self) -> bool:
        return self.email_sent and self.status in (
            VerificationStatus.PENDING,
            VerificationStatus.VERIFIED,
        )

    def _move(self, target: VerificationStatus, error: str | None = None) -> None:
        if target not in _TRANSITIONS[self.status]:
            logger.debug("verification.ignored %s -> %s", self.status.value, target.value)
            return
        self.status = target
        self.error_message = error

    def reset(self) -> None:
        """Forget the previous send; the next entry into the step signs up again."""
        self.status = VerificationStatus.NOT_SENT
        self.error_message = None
        self.email_sent = False

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def send(self) -> VerificationStatus:
        """
        Create the account and trigger the confirmation email.

        :returns: Status after the call (PENDING, VERIFIED or ERROR).
        """
        draft = self._draft()
        metadata = {
            "first_name": draft.first_name,
            "last_name": draft.last_name,
            "phone_number": draft.phone_number,
            "agree_to_marketing": draft.agree_to_marketing,
        }
        self.attempts += 1
        try:
            with maybe_timed(self.observer, "verification.send"):
                result = await self.scope.run(
                    self.identity.sign_up(draft.email, draft.password, metadata, self.redirect_url)
                )
        except ScopeClosed:
            return self.status
        except Exception as exc:
            message = friendly_signup_message(str(exc))
            logger.warning("verification.send_failed: %s", exc)
            if self.observer is not None:
                self.observer.record_error("verification.send", exc)
            self._move(VerificationStatus.ERROR, message)
            return self.status

        self.email_sent = True
        if result.session is not None:
            self._move(VerificationStatus.VERIFIED)
        else:
            self._move(VerificationStatus.PENDING)
        logger.info("verification.sent status=%s", self.status.value)
        return self.status

    async def resend(self) -> Notice:
        """
        Ask the provider to send the confirmation email again.

        Never changes a PENDING or VERIFIED status; the outcome is reported as
        a tagged :class:`Notice`.
        """
        email = self._draft().email
        try:
            await self.scope.run(self.identity.resend_confirmation(email, self.redirect_url))
        except ScopeClosed:
            return Notice(NoticeKind.ERROR, CancelledOperation.default_message)
        except Exception as exc:
            logger.warning("verification.resend_failed: %s", exc)
            if self.observer is not None:
                self.observer.record_error("verification.resend", exc)
            return Notice(NoticeKind.ERROR, friendly_signup_message(str(exc)))
        return Notice(NoticeKind.INFO, RESEND_SUCCESS)

    async def check_status(self) -> VerificationStatus:
        """
        Poll the provider for a session or a confirmed user.

        A lookup failure moves the flow to ``ERROR``.
        """
        try:
            session = await self.scope.run(self.identity.get_session())
            user = None if session is not None else await self.scope.run(self.identity.get_user())
        except ScopeClosed:
            return self.status
        except Exception as exc:
            err = classify_error(exc)
            logger.warning("verification.check_failed: %s", exc)
            if self.observer is not None:
                self.observer.record_error("verification.check", exc)
            self._move(VerificationStatus.ERROR, str(err))
            return self.status

        if session is not None or (user is not None and user.is_confirmed):
            self._move(VerificationStatus.VERIFIED)
        elif self.email_sent:
            self._move(VerificationStatus.PENDING)
        return self.status

    async def aclose(self) -> None:
        await self.scope.aclose()
