"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic**: they never import Flask or the
Supabase gateway. Every asynchronous operation converts whatever it caught into
one of these types (see :func:`classify_error`) before reporting back to its
caller, so no driver exception ever crosses a service boundary.

The translation to HTTP responses (RFC 7807) is handled by
``subtrack/core/errors.py`` via :func:`subtrack.core.errors.from_service_error`.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - ``str(err)`` is always safe to show to an end user.
    - ``retryable`` tells callers whether an automatic retry makes sense.
    """

    retryable = False
    default_message = "An error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


@dataclass(frozen=True, slots=True)
class FieldError:
    """
    A single field-scoped validation failure.

    :param field: Name of the offending field.
    :type field: str
    :param message: User-facing explanation.
    :type message: str
    """

    field: str
    message: str


# --------------------------------------------------------------------------- #
# Taxonomy
# --------------------------------------------------------------------------- #


class FieldValidationError(ServiceError):
    """Raised when local validation rejects input; never reaches the network."""

    default_message = "Validation failed."

    def __init__(self, errors: list[FieldError] | dict[str, str], message: str | None = None) -> None:
        if isinstance(errors, dict):
            errors = [FieldError(name, msg) for name, msg in errors.items()]
        self.errors: list[FieldError] = list(errors)
        super().__init__(message or (self.errors[0].message if self.errors else None))

    def as_dict(self) -> dict[str, str]:
        return {err.field: err.message for err in self.errors}


class TransientError(ServiceError):
    """Network blips, timeouts and 5xx responses; safe to retry."""

    retryable = True
    default_message = "Please check your connection and try again."


class ConflictError(ServiceError):
    """Raised when a unique constraint or duplicate-name rule is hit."""

    default_message = "This item already exists."


class AuthRequiredError(ServiceError):
    """Missing/expired credentials or a dangling owner reference."""

    default_message = "Your session is no longer valid. Please log in again."


class PermissionDeniedError(ServiceError):
    """Raised when the backend refuses access to a row."""

    default_message = "You do not have permission to perform this action."


class NotFoundError(ServiceError):
    """Raised when the target record does not exist (or has no persistence key)."""

    default_message = "The requested item could not be found."


class ConstraintError(ServiceError):
    """
    Raised when a server-side check constraint rejects a row.

    The message mirrors the client-side business rule that should have caught
    it; the server remains the authority.
    """

    default_message = "The submitted data does not satisfy the required constraints."


class UnexpectedError(ServiceError):
    """Anything that does not fit the categories above."""

    def __init__(self, raw: str | None = None) -> None:
        self.raw = raw or ""
        super().__init__(f"An error occurred: {raw}" if raw else self.default_message)


class BusyError(ServiceError):
    """Raised when a single-flight operation is already running."""

    default_message = "Another operation is already in progress."


class CancelledOperation(ServiceError):
    """Raised when the owning scope was torn down before the operation finished."""

    default_message = "The operation was cancelled."


# --------------------------------------------------------------------------- #
# Classification
# --------------------------------------------------------------------------- #

PRICE_CONSTRAINT_MESSAGE = "Price must be greater than 0."
PAYMENT_DAY_CONSTRAINT_MESSAGE = "Payment day must be between 1 and 31."

_TRANSIENT_STATUSES = ("500", "502", "503", "504")


@dataclass(slots=True)
class _Facts:
    message: str = ""
    code: str = ""
    status: int | None = None


def _facts(exc: BaseException) -> _Facts:
    """Pull the comparable bits (message, driver code, HTTP status) out of ``exc``."""
    code = getattr(exc, "code", None)
    status = getattr(exc, "status", None)
    return _Facts(
        message=str(exc).lower(),
        code=str(code or "").upper(),
        status=status if isinstance(status, int) else None,
    )


def _constraint_message(message: str) -> str:
    if "price" in message:
        return PRICE_CONSTRAINT_MESSAGE
    if "payment_date" in message:
        return PAYMENT_DAY_CONSTRAINT_MESSAGE
    return ConstraintError.default_message


def classify_error(exc: BaseException) -> ServiceError:
    """
    Convert any exception into the service error taxonomy.

    Driver codes (PostgREST/PostgreSQL) and HTTP statuses win over message
    sniffing; message substrings follow the order transient → conflict →
    foreign key → check constraint → timeout → not-null → syntax → auth →
    permission → not found → server error.

    :param exc: Exception caught at an operation boundary.
    :type exc: BaseException
    :returns: The matching :class:`ServiceError` (``exc`` itself when it already is one).
    :rtype: ServiceError
    """
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return TransientError()

    facts = _facts(exc)
    message, code, status = facts.message, facts.code, facts.status

    # Driver codes first
    if code == "23505":
        return ConflictError()
    if code == "23503":
        return AuthRequiredError("Your account information is invalid. Please log in again.")
    if code == "23514":
        return ConstraintError(_constraint_message(message))
    if code == "23502":
        return ConstraintError("Required information is missing. Please fill in all required fields.")
    if code == "22P02":
        return ConstraintError("The submitted data has an invalid format. Please check it again.")
    if code == "42501":
        return PermissionDeniedError()
    if code == "PGRST116":
        return NotFoundError()
    if code.startswith("PGRST3"):
        return AuthRequiredError()
    if status is not None:
        if status >= 500:
            return TransientError()
        if status == 401:
            return AuthRequiredError()
        if status == 403:
            return PermissionDeniedError()
        if status == 404:
            return NotFoundError()

    # Message sniffing, in the order the backend tends to phrase things
    if "network" in message or "fetch" in message:
        return TransientError()
    if "duplicate" in message or "unique" in message:
        return ConflictError()
    if "foreign key" in message:
        return AuthRequiredError("Your account information is invalid. Please log in again.")
    if "check constraint" in message:
        return ConstraintError(_constraint_message(message))
    if "timeout" in message or "timed out" in message:
        return TransientError()
    if "not-null constraint" in message:
        return ConstraintError("Required information is missing. Please fill in all required fields.")
    if "invalid input syntax" in message:
        return ConstraintError("The submitted data has an invalid format. Please check it again.")
    if "column" in message and "does not exist" in message:
        return UnexpectedError("database schema mismatch, please contact support")
    if "unauthorized" in message or "401" in message or "jwt" in message:
        return AuthRequiredError()
    if "forbidden" in message or "403" in message or "row-level security" in message:
        return PermissionDeniedError()
    if "not found" in message or "404" in message:
        return NotFoundError()
    if "server error" in message or any(s in message for s in _TRANSIENT_STATUSES):
        return TransientError()
    return UnexpectedError(str(exc) or exc.__class__.__name__)


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` classifies as a retryable failure."""
    return classify_error(exc).retryable


__all__ = [
    "AuthRequiredError",
    "BusyError",
    "CancelledOperation",
    "ConflictError",
    "ConstraintError",
    "FieldError",
    "FieldValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ServiceError",
    "TransientError",
    "UnexpectedError",
    "classify_error",
    "is_transient",
]
