"""Unit tests for the service error taxonomy and its HTTP mapping."""

from __future__ import annotations

import httpx
import pytest

from subtrack.core.errors import from_service_error
from subtrack.infra.supabase._http import SupabaseError
from subtrack.services._shared.errors import (
    PAYMENT_DAY_CONSTRAINT_MESSAGE,
    PRICE_CONSTRAINT_MESSAGE,
    AuthRequiredError,
    BusyError,
    CancelledOperation,
    ConflictError,
    ConstraintError,
    FieldError,
    FieldValidationError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    UnexpectedError,
    classify_error,
    is_transient,
)


class TestClassifyByCode:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("23505", ConflictError),
            ("23503", AuthRequiredError),
            ("23514", ConstraintError),
            ("23502", ConstraintError),
            ("22P02", ConstraintError),
            ("42501", PermissionDeniedError),
            ("PGRST116", NotFoundError),
            ("PGRST301", AuthRequiredError),
        ],
    )
    def test_driver_codes(self, code, expected):
        assert isinstance(classify_error(SupabaseError("irrelevant", code=code)), expected)

    def test_check_constraint_names_the_rule(self):
        price = SupabaseError('new row violates check constraint "subscriptions_price_check"', code="23514")
        day = SupabaseError('violates check constraint "subscriptions_payment_date_check"', code="23514")
        assert classify_error(price).message == PRICE_CONSTRAINT_MESSAGE
        assert classify_error(day).message == PAYMENT_DAY_CONSTRAINT_MESSAGE


class TestClassifyByStatus:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [(500, TransientError), (503, TransientError), (401, AuthRequiredError), (403, PermissionDeniedError), (404, NotFoundError)],
    )
    def test_statuses(self, status, expected):
        assert isinstance(classify_error(SupabaseError("x", status=status)), expected)

    def test_transport_errors_are_transient(self):
        request = httpx.Request("GET", "https://example.supabase.co")
        assert is_transient(httpx.ConnectTimeout("slow", request=request))
        assert is_transient(TimeoutError())
        assert is_transient(ConnectionError())


class TestClassifyByMessage:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Network request failed", TransientError),
            ("duplicate key value violates unique constraint", ConflictError),
            ("insert violates foreign key constraint", AuthRequiredError),
            ("statement timeout", TransientError),
            ('null value in column "name" violates not-null constraint', ConstraintError),
            ("invalid input syntax for type uuid", ConstraintError),
            ("JWT expired", AuthRequiredError),
            ("new row violates row-level security policy", PermissionDeniedError),
            ("Resource not found", NotFoundError),
            ("Internal server error", TransientError),
        ],
    )
    def test_substrings(self, message, expected):
        assert isinstance(classify_error(RuntimeError(message)), expected)

    def test_schema_mismatch_is_unexpected(self):
        err = classify_error(RuntimeError('column "colour" does not exist'))
        assert isinstance(err, UnexpectedError)
        assert "schema mismatch" in err.message

    def test_unknown_keeps_raw_text(self):
        err = classify_error(RuntimeError("kaboom"))
        assert isinstance(err, UnexpectedError)
        assert err.raw == "kaboom"
        assert err.message == "An error occurred: kaboom"

    def test_service_errors_pass_through(self):
        original = BusyError()
        assert classify_error(original) is original
        assert not is_transient(original)


class TestFieldValidationError:
    def test_accepts_mapping_or_list(self):
        from_dict = FieldValidationError({"email": "bad"})
        from_list = FieldValidationError([FieldError("email", "bad")], "Fix the form")
        assert from_dict.as_dict() == from_list.as_dict() == {"email": "bad"}
        assert from_dict.message == "bad"
        assert from_list.message == "Fix the form"


class TestHttpMapping:
    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (FieldValidationError({"name": "x"}), 422, "validation_error"),
            (ConstraintError(), 422, "constraint_violation"),
            (ConflictError(), 409, "conflict"),
            (BusyError(), 409, "operation_in_progress"),
            (AuthRequiredError(), 401, "unauthorized"),
            (PermissionDeniedError(), 403, "forbidden"),
            (NotFoundError(), 404, "not_found"),
            (TransientError(), 503, "service_unavailable"),
            (CancelledOperation(), 503, "cancelled"),
            (UnexpectedError("boom"), 500, "unexpected_error"),
        ],
    )
    def test_status_and_code(self, error, status, code):
        api_error = from_service_error(error)
        assert (api_error.status_code, api_error.code) == (status, code)
        assert api_error.message == error.message

    def test_field_errors_are_exposed(self):
        api_error = from_service_error(FieldValidationError({"price": "too big"}))
        assert api_error.details == {"errors": {"price": "too big"}}
