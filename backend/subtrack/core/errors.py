"""Centralized JSON (RFC 7807) error handling for the API.

Services report failures as :class:`~subtrack.services._shared.errors.ServiceError`
values; views either raise them or convert them with :func:`from_service_error`.
Every error leaves the process as ``application/problem+json`` carrying a stable
``code`` and the correlation ``request_id``.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from werkzeug.exceptions import HTTPException

from subtrack.core.logger import ensure_request_id
from subtrack.services._shared.errors import (
    AuthRequiredError,
    BusyError,
    CancelledOperation,
    ConflictError,
    ConstraintError,
    FieldValidationError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    TransientError,
)

log = logging.getLogger(__name__)

# Stable codes for errors raised by werkzeug itself (routing, methods, bodies)
HTTP_ERROR_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_server_error",
    503: "service_unavailable",
}


class APIError(Exception):
    """
    Represent a JSON-serializable API error.

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier, typically snake_case. Defaults to
        ``"bad_request"``.
    details : dict[str, Any] | None, optional
        Structured payload (e.g. per-field messages under ``errors``).
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        """
        Serialize into an RFC 7807 problem document.

        :returns: Problem+JSON dictionary including ``code`` and ``request_id``.
        :rtype: dict
        """
        problem: dict[str, Any] = {
            "type": "about:blank",
            "title": HTTPStatus(self.status_code).phrase,
            "status": self.status_code,
            "detail": self.message,
            "instance": request.path if request else None,
            "code": self.code,
        }
        if self.details:
            problem["details"] = self.details
        problem["request_id"] = ensure_request_id()
        return problem


class NotFound(APIError):
    """404 when a session, subscription or route is missing."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    """409 when the resource is not in a state that allows the request."""

    def __init__(self, message: str = "Conflict", code: str = "conflict") -> None:
        super().__init__(message, status_code=HTTPStatus.CONFLICT, code=code)


class Unauthorized(APIError):
    """401 when the bearer token is missing or rejected by the identity provider."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, code="unauthorized")


# (service error type, HTTP status, code); first isinstance match wins
_SERVICE_ERROR_MAP: tuple[tuple[type[ServiceError], int, str], ...] = (
    (FieldValidationError, HTTPStatus.UNPROCESSABLE_ENTITY, "validation_error"),
    (ConstraintError, HTTPStatus.UNPROCESSABLE_ENTITY, "constraint_violation"),
    (ConflictError, HTTPStatus.CONFLICT, "conflict"),
    (BusyError, HTTPStatus.CONFLICT, "operation_in_progress"),
    (AuthRequiredError, HTTPStatus.UNAUTHORIZED, "unauthorized"),
    (PermissionDeniedError, HTTPStatus.FORBIDDEN, "forbidden"),
    (NotFoundError, HTTPStatus.NOT_FOUND, "not_found"),
    (TransientError, HTTPStatus.SERVICE_UNAVAILABLE, "service_unavailable"),
    (CancelledOperation, HTTPStatus.SERVICE_UNAVAILABLE, "cancelled"),
)


def from_service_error(err: ServiceError) -> APIError:
    """
    Translate a service-layer error into an :class:`APIError`.

    :param err: Classified service error.
    :returns: API error carrying the matching status and code; field errors
        are exposed under ``details.errors``.
    """
    for error_type, status, code in _SERVICE_ERROR_MAP:
        if isinstance(err, error_type):
            details = {"errors": err.as_dict()} if isinstance(err, FieldValidationError) else None
            return APIError(err.message, status_code=status, code=code, details=details)
    return APIError(err.message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR, code="unexpected_error")


def _respond(err: APIError, exc: BaseException | None = None) -> tuple[Response, int]:
    problem = err.to_problem()
    if err.status_code >= 500:
        log.error(
            "api.error code=%s status=%s detail=%s",
            err.code,
            err.status_code,
            err.message,
            exc_info=exc,
        )
    else:
        log.warning("api.error code=%s status=%s detail=%s", err.code, err.status_code, err.message)
    response = jsonify(problem)
    response.mimetype = "application/problem+json"
    return response, err.status_code


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - :class:`ServiceError` values that escape a view are mapped like
      :func:`from_service_error` results.
    - marshmallow input errors become 422 with per-field messages.
    - Anything unexpected is a 500 with no internal detail; the traceback is
      logged.
    """

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return _respond(err)

    @app.errorhandler(ServiceError)
    def handle_service_error(err: ServiceError):
        return _respond(from_service_error(err), err)

    @app.errorhandler(MarshmallowValidationError)
    def handle_validation_error(err: MarshmallowValidationError):
        return _respond(
            APIError(
                "Validation failed",
                status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
                code="validation_error",
                details={"errors": err.messages},
            )
        )

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        code = HTTP_ERROR_CODES.get(status, "error")
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        else:
            message = (err.description or code.replace("_", " ").capitalize()).strip()
        return _respond(APIError(message, status_code=status, code=code))

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        # Never leak internal details
        return _respond(
            APIError(
                "Unexpected error",
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                code="internal_server_error",
            ),
            err,
        )
