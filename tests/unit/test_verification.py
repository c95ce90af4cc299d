"""Unit tests for the email verification sub-flow."""

from __future__ import annotations

import asyncio

import pytest

from subtrack.infra.supabase._http import SupabaseError
from subtrack.services._shared.observability import ObservabilityContext
from subtrack.services._shared.scope import TaskScope
from subtrack.services.signup.verification import (
    RESEND_SUCCESS,
    NoticeKind,
    VerificationFlow,
    VerificationStatus,
    friendly_signup_message,
)
from tests.factories.signup import SignupDraftFactory
from tests.helpers.fakes import FakeIdentityProvider


@pytest.fixture()
def draft():
    return SignupDraftFactory(
        email="verify@example.com", first_name="Ada", last_name="Lovelace", agree_to_marketing=True
    )


@pytest.fixture()
async def flow(identity, draft):
    verification = VerificationFlow(identity, lambda: draft, redirect_url="http://localhost/cb")
    yield verification
    await verification.aclose()


class TestFriendlyMessages:
    @pytest.mark.parametrize(
        ("raw", "start"),
        [
            ("User already registered", "This email address is already registered"),
            ("Unable to validate email address: invalid format", "The email address is not valid"),
            ("Password should be at least 6 characters", "The password is too weak"),
            ("For security purposes, you can only request this once every 60 seconds", "Too many attempts"),
        ],
    )
    def test_known_errors(self, raw, start):
        assert friendly_signup_message(raw).startswith(start)

    def test_unknown_error_keeps_raw_text(self):
        assert friendly_signup_message("Database error saving new user") == "Database error saving new user"

    def test_empty_error_has_fallback(self):
        assert friendly_signup_message("") == "Something went wrong while creating your account."


class TestSend:
    async def test_pending_without_session(self, flow, identity, draft):
        status = await flow.send()

        assert status is VerificationStatus.PENDING
        assert flow.email_sent is True
        assert flow.can_proceed is True
        email, password, metadata, redirect = identity.sign_up_args[0]
        assert (email, password, redirect) == (draft.email, draft.password, "http://localhost/cb")
        assert metadata == {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "phone_number": draft.phone_number,
            "agree_to_marketing": True,
        }

    async def test_verified_when_a_session_is_returned(self, draft):
        identity = FakeIdentityProvider(auto_confirm=True)
        flow = VerificationFlow(identity, lambda: draft)
        assert await flow.send() is VerificationStatus.VERIFIED
        await flow.aclose()

    async def test_failure_moves_to_error_with_friendly_message(self, flow, identity):
        identity.fail("sign_up", SupabaseError("User already registered", status=422))

        assert await flow.send() is VerificationStatus.ERROR
        assert flow.error_message == "This email address is already registered. Try logging in instead."
        assert flow.email_sent is False
        assert flow.can_proceed is False

    async def test_retry_after_error(self, flow, identity):
        identity.fail("sign_up", RuntimeError("network down"))
        await flow.send()
        assert await flow.send() is VerificationStatus.PENDING
        assert flow.error_message is None
        assert flow.attempts == 2

    async def test_error_is_recorded_by_observer(self, identity, draft):
        observer = ObservabilityContext()
        flow = VerificationFlow(identity, lambda: draft, observer=observer)
        identity.fail("sign_up", RuntimeError("boom"))
        await flow.send()
        assert observer.snapshot()["errors"][0]["name"] == "verification.send"
        await flow.aclose()


class TestResend:
    async def test_success_notice_keeps_status(self, flow):
        await flow.send()
        notice = await flow.resend()

        assert notice.kind is NoticeKind.INFO
        assert notice.message == RESEND_SUCCESS
        assert notice.is_error is False
        assert flow.status is VerificationStatus.PENDING

    async def test_failure_notice_keeps_status(self, flow, identity):
        await flow.send()
        identity.fail("resend_confirmation", RuntimeError("Email rate limit exceeded"))

        notice = await flow.resend()

        assert notice.is_error
        assert notice.message.startswith("Too many attempts")
        assert flow.status is VerificationStatus.PENDING


class TestCheckStatus:
    async def test_pending_until_confirmed(self, flow, identity, draft):
        await flow.send()
        assert await flow.check_status() is VerificationStatus.PENDING

        identity.confirm(draft.email)
        assert await flow.check_status() is VerificationStatus.VERIFIED

    async def test_session_means_verified(self, flow, identity, draft):
        await flow.send()
        await identity.sign_in_with_password(draft.email, draft.password)  # unconfirmed: no session
        identity.confirm(draft.email)
        await identity.sign_in_with_password(draft.email, draft.password)

        assert await flow.check_status() is VerificationStatus.VERIFIED
        assert identity.count("get_user") == 0

    async def test_lookup_failure_moves_to_error(self, flow, identity):
        await flow.send()
        identity.fail("get_session", SupabaseError("upstream", status=503))

        assert await flow.check_status() is VerificationStatus.ERROR
        assert flow.error_message == "Please check your connection and try again."
        assert flow.can_proceed is False

    async def test_verified_is_terminal(self, flow, identity, draft):
        await flow.send()
        identity.confirm(draft.email)
        await flow.check_status()
        identity.fail("get_session", RuntimeError("network down"))

        assert await flow.check_status() is VerificationStatus.VERIFIED


class TestCancellation:
    async def test_closing_the_scope_discards_a_late_result(self, identity, draft):
        scope = TaskScope("verification")
        flow = VerificationFlow(identity, lambda: draft, scope=scope)
        gate = identity.hold("sign_up")

        pending = asyncio.ensure_future(flow.send())
        await asyncio.sleep(0)
        await scope.aclose()
        gate.set()

        assert await pending is VerificationStatus.NOT_SENT
        assert flow.email_sent is False
