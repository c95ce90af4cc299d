"""
DTOs for the signup wizard.

Contracts for the in-progress signup draft and the step descriptors derived
from the wizard's current position.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import IntEnum

# --------------------------------------------------------------------------- #
# Draft
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class SignupDraft:
    """
    Accumulated, not-yet-submitted signup data.

    Owned by one :class:`~subtrack.services.signup.wizard.SignupWizard` for the
    duration of the session; never persisted mid-flow.

    :param email: Login email.
    :type email: str
    :param password: Raw password (sent once to the identity provider).
    :type password: str
    :param confirm_password: Repetition of ``password``.
    :type confirm_password: str
    :param first_name: Given name.
    :type first_name: str
    :param last_name: Family name.
    :type last_name: str
    :param phone_number: Optional contact number.
    :type phone_number: str
    :param agree_to_terms: Terms of service accepted.
    :type agree_to_terms: bool
    :param agree_to_marketing: Marketing opt-in.
    :type agree_to_marketing: bool
    """

    email: str = ""
    password: str = ""
    confirm_password: str = ""
    first_name: str = ""
    last_name: str = ""
    phone_number: str = ""
    agree_to_terms: bool = False
    agree_to_marketing: bool = False

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def public_dict(self) -> dict[str, object]:
        """Return the draft without secrets, for echoing back to clients."""
        data = asdict(self)
        data.pop("password")
        data.pop("confirm_password")
        return data


BOOLEAN_FIELDS = frozenset({"agree_to_terms", "agree_to_marketing"})

# --------------------------------------------------------------------------- #
# Steps
# --------------------------------------------------------------------------- #


class Step(IntEnum):
    """Ordered wizard steps; the value is the public step id."""

    ACCOUNT = 1
    PERSONAL = 2
    TERMS = 3
    VERIFICATION = 4
    COMPLETE = 5


@dataclass(frozen=True, slots=True)
class StepDescriptor:
    """
    Presentation view of one step, derived from the current step only.

    :param id: Step id (1..5).
    :type id: int
    :param title: Short title.
    :type title: str
    :param description: One-line description.
    :type description: str
    :param is_completed: ``True`` iff ``id`` is before the current step.
    :type is_completed: bool
    :param is_current: ``True`` iff ``id`` is the current step.
    :type is_current: bool
    """

    id: int
    title: str
    description: str
    is_completed: bool
    is_current: bool
