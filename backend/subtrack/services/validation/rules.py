"""
Field-level rules for the signup form.

Every rule is a pure function returning ``None`` when the value is acceptable
or a user-facing message otherwise.
"""

from __future__ import annotations

import re

from subtrack.services._shared.errors import FieldError
from subtrack.services.signup.dto import SignupDraft

# Permissive on purpose: "a..b@example.com" passes
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[0-9+\-\s()]+$")

PASSWORD_MIN_LENGTH = 8
NAME_MAX_LENGTH = 50

EMAIL_REQUIRED = "Please enter your email address."
EMAIL_INVALID = "Please enter a valid email address."
PASSWORD_REQUIRED = "Please enter a password."
PASSWORD_TOO_SHORT = f"Password must be at least {PASSWORD_MIN_LENGTH} characters long."
PASSWORD_NO_LOWERCASE = "Password must contain at least one lowercase letter."
PASSWORD_NO_UPPERCASE = "Password must contain at least one uppercase letter."
PASSWORD_NO_DIGIT = "Password must contain at least one number."
CONFIRM_REQUIRED = "Please confirm your password."
CONFIRM_MISMATCH = "Passwords do not match."
PHONE_INVALID = "Please enter a valid phone number."
TERMS_REQUIRED = "Please agree to the terms of service."

FIRST_NAME_LABEL = "first name"
LAST_NAME_LABEL = "last name"


def validate_email(email: str) -> str | None:
    if not email:
        return EMAIL_REQUIRED
    if not EMAIL_PATTERN.fullmatch(email):
        return EMAIL_INVALID
    return None


def validate_password(password: str) -> str | None:
    """Check length, lowercase, uppercase and digit, reporting the first failure."""
    if not password:
        return PASSWORD_REQUIRED
    if len(password) < PASSWORD_MIN_LENGTH:
        return PASSWORD_TOO_SHORT
    if not re.search(r"[a-z]", password):
        return PASSWORD_NO_LOWERCASE
    if not re.search(r"[A-Z]", password):
        return PASSWORD_NO_UPPERCASE
    if not re.search(r"[0-9]", password):
        return PASSWORD_NO_DIGIT
    return None


def validate_confirm_password(password: str, confirm_password: str) -> str | None:
    if not confirm_password:
        return CONFIRM_REQUIRED
    if password != confirm_password:
        return CONFIRM_MISMATCH
    return None


def validate_name(name: str, label: str) -> str | None:
    if not name:
        return f"Please enter your {label}."
    if len(name) > NAME_MAX_LENGTH:
        return f"{label.capitalize()} must be at most {NAME_MAX_LENGTH} characters."
    return None


def validate_phone_number(phone_number: str | None) -> str | None:
    if not phone_number:
        return None  # optional
    if not PHONE_PATTERN.fullmatch(phone_number):
        return PHONE_INVALID
    return None


def validate_terms(agree_to_terms: bool) -> str | None:
    if agree_to_terms is not True:
        return TERMS_REQUIRED
    return None


def validate_signup_draft(draft: SignupDraft) -> list[FieldError]:
    """
    Validate every field of ``draft``.

    :param draft: Signup data collected so far.
    :type draft: :class:`SignupDraft`
    :returns: One :class:`FieldError` per failing field, in form order.
    :rtype: list[FieldError]
    """
    checks = (
        ("email", validate_email(draft.email)),
        ("password", validate_password(draft.password)),
        ("confirm_password", validate_confirm_password(draft.password, draft.confirm_password)),
        ("first_name", validate_name(draft.first_name, FIRST_NAME_LABEL)),
        ("last_name", validate_name(draft.last_name, LAST_NAME_LABEL)),
        ("phone_number", validate_phone_number(draft.phone_number)),
        ("agree_to_terms", validate_terms(draft.agree_to_terms)),
    )
    return [FieldError(name, message) for name, message in checks if message]
