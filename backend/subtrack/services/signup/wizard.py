"""
Multi-step signup wizard.

The wizard owns the :class:`SignupDraft`, the current :class:`Step` and the
verification sub-flow. Every field change re-validates the whole draft; the
errors exposed to callers are the subset belonging to the active step.

Example
-------
>>> wizard = SignupWizard(identity, redirect_url="https://app.example/#/auth/callback")
>>> wizard.change("email", "a@b.com")
>>> await wizard.next()
False
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from subtrack.services._shared.errors import FieldError
from subtrack.services._shared.observability import ObservabilityContext
from subtrack.services._shared.ports import IdentityProvider
from subtrack.services._shared.scope import TaskScope
from subtrack.services.signup.dto import BOOLEAN_FIELDS, SignupDraft, Step, StepDescriptor
from subtrack.services.signup.verification import VerificationFlow, VerificationStatus
from subtrack.services.validation.rules import validate_signup_draft

logger = logging.getLogger(__name__)

# Fields whose errors gate each step
STEP_FIELDS: dict[Step, frozenset[str]] = {
    Step.ACCOUNT: frozenset({"email", "password", "confirm_password"}),
    Step.PERSONAL: frozenset({"first_name", "last_name", "phone_number"}),
    Step.TERMS: frozenset({"agree_to_terms"}),
    Step.VERIFICATION: frozenset(),
    Step.COMPLETE: frozenset(),
}

STEP_TEXT: dict[Step, tuple[str, str]] = {
    Step.ACCOUNT: ("Account", "Email and password"),
    Step.PERSONAL: ("Personal details", "Name and contact"),
    Step.TERMS: ("Terms", "Review the terms of service"),
    Step.VERIFICATION: ("Email verification", "Activate your account"),
    Step.COMPLETE: ("Done", "Signup complete"),
}

# Changing these after the confirmation email went out requires a new sign-up
CREDENTIAL_FIELDS = frozenset({"email", "password"})

# step -> (next, back); None marks "no move"
_TRANSITIONS: dict[Step, tuple[Step | None, Step | None]] = {
    Step.ACCOUNT: (Step.PERSONAL, None),
    Step.PERSONAL: (Step.TERMS, Step.ACCOUNT),
    Step.TERMS: (Step.VERIFICATION, Step.PERSONAL),
    Step.VERIFICATION: (Step.COMPLETE, Step.TERMS),
    Step.COMPLETE: (None, None),
}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value)


class SignupWizard:
    """
    State machine driving one signup session.

    :param identity: Identity provider used by the verification step.
    :param redirect_url: Where the confirmation email link should land.
    :param scope: Cancellation scope owning every external call; a private one
        is created when omitted.
    :param observer: Optional diagnostics sink.
    :param draft: Pre-filled draft, mostly for tests.
    :param on_back_to_login: Callback invoked when the user leaves the
        completed wizard.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        *,
        redirect_url: str | None = None,
        scope: TaskScope | None = None,
        observer: ObservabilityContext | None = None,
        draft: SignupDraft | None = None,
        on_back_to_login: Callable[[], None] | None = None,
    ) -> None:
        self.scope = scope or TaskScope("signup")
        self.observer = observer
        self.draft = draft or SignupDraft()
        self.current = Step.ACCOUNT
        self.finished = False
        self._on_back_to_login = on_back_to_login
        self.verification = VerificationFlow(
            identity,
            lambda: self.draft,
            redirect_url=redirect_url,
            scope=self.scope,
            observer=observer,
        )
        self._all_errors: list[FieldError] = []
        self._revalidate()

    # ------------------------------------------------------------------ #
    # Draft
    # ------------------------------------------------------------------ #

    def change(self, field: str, value: Any) -> None:
        """
        Set one draft field and re-run the full validation.

        Editing the email or password after the account was created resets
        the verification step, so the next entry sends a new confirmation.

        :raises ValueError: If ``field`` is not a draft field.
        """
        if field not in SignupDraft.field_names():
            raise ValueError(f"Unknown signup field: {field}")
        if field in BOOLEAN_FIELDS:
            value = _coerce_bool(value)
        else:
            value = "" if value is None else str(value)
        changed = getattr(self.draft, field) != value
        setattr(self.draft, field, value)
        if changed and field in CREDENTIAL_FIELDS and self.verification.email_sent:
            logger.info("signup.credentials_changed field=%s", field)
            self.verification.reset()
        self._revalidate()

    def _revalidate(self) -> None:
        self._all_errors = validate_signup_draft(self.draft)
        if self.observer is not None:
            self.observer.record_validation(
                "signup", {err.field: err.message for err in self._all_errors}
            )

    @property
    def all_errors(self) -> list[FieldError]:
        return list(self._all_errors)

    @property
    def errors(self) -> list[FieldError]:
        """Errors of the active step only."""
        fields = STEP_FIELDS[self.current]
        return [err for err in self._all_errors if err.field in fields]

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    def can_advance(self) -> bool:
        if self.finished or _TRANSITIONS[self.current][0] is None:
            return False
        if self.current is Step.VERIFICATION:
            return self.verification.can_proceed
        return not self.errors

    async def next(self) -> bool:
        """
        Move to the following step when the active one is valid.

        Entering VERIFICATION sends the confirmation email unless one was
        already sent successfully.

        :returns: ``True`` when the step changed.
        """
        if not self.can_advance():
            logger.debug("signup.next_blocked step=%s", self.current.name)
            return False
        target = _TRANSITIONS[self.current][0]
        if target is None:
            return False
        self.current = target
        logger.info("signup.step step=%s", self.current.name)
        if self.current is Step.VERIFICATION and not self.verification.email_sent:
            await self.verification.send()
        return True

    def back(self) -> bool:
        """Return to the previous step; a no-op on ACCOUNT and COMPLETE."""
        target = _TRANSITIONS[self.current][1]
        if self.finished or target is None:
            return False
        self.current = target
        return True

    @property
    def steps(self) -> list[StepDescriptor]:
        return [
            StepDescriptor(
                id=int(step),
                title=STEP_TEXT[step][0],
                description=STEP_TEXT[step][1],
                is_completed=not self.finished and step < self.current,
                is_current=not self.finished and step == self.current,
            )
            for step in Step
        ]

    @property
    def verification_status(self) -> VerificationStatus:
        return self.verification.status

    # ------------------------------------------------------------------ #
    # Exit
    # ------------------------------------------------------------------ #

    async def back_to_login(self) -> bool:
        """
        Leave the completed wizard: discard the draft, stop pending work and
        invoke the caller's callback.

        :returns: ``False`` when the wizard is not on the COMPLETE step.
        """
        if self.current is not Step.COMPLETE or self.finished:
            return False
        self.finished = True
        self.draft = SignupDraft()
        self._all_errors = []
        await self.scope.aclose()
        if self._on_back_to_login is not None:
            self._on_back_to_login()
        return True

    async def aclose(self) -> None:
        await self.scope.aclose()
