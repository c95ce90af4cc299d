"""Signup wizard endpoints.

Each wizard lives in the in-process session registry between requests; the
client drives it step by step with the session id returned on creation.
Requests that change a wizard hold its session lock for their whole duration.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, current_app, request

from subtrack.api.deps import json_response, no_content, timing
from subtrack.core.errors import APIError, Conflict, from_service_error
from subtrack.core.extensions import get_gateway, get_signup_sessions
from subtrack.schemas import NoticeSchema, SignupPatchSchema, SignupStateSchema
from subtrack.services._shared.errors import FieldValidationError
from subtrack.services.signup.dto import Step
from subtrack.services.signup.wizard import SignupWizard

log = logging.getLogger(__name__)

bp = Blueprint("signup", __name__)

patch_schema = SignupPatchSchema()
state_schema = SignupStateSchema()
notice_schema = NoticeSchema()

STEP_INVALID_MESSAGE = "Please correct the highlighted fields before continuing."


def _state(session_id: str, wizard: SignupWizard) -> dict[str, Any]:
    return state_schema.dump({"id": session_id, "wizard": wizard})


def _apply_patch(wizard: SignupWizard, payload: dict[str, Any]) -> None:
    for field, value in payload.items():
        wizard.change(field, value)


@bp.post("")
@timing
def start():
    """Open a signup session, optionally pre-filling draft fields."""

    payload = patch_schema.load(request.get_json(silent=True) or {})
    wizard = SignupWizard(
        get_gateway().identity(),
        redirect_url=current_app.config["SUBTRACK_AUTH_REDIRECT_URL"],
    )
    _apply_patch(wizard, payload)
    session_id = get_signup_sessions().add(wizard)
    log.info("signup.started", extra={"session_id": session_id})
    return json_response({"data": _state(session_id, wizard)}, status=201)


@bp.get("/<session_id>")
@timing
def show(session_id: str):
    wizard = get_signup_sessions().get(session_id)
    return json_response({"data": _state(session_id, wizard)})


@bp.patch("/<session_id>")
@timing
def update(session_id: str):
    """Change draft fields; the active step's errors come back in the state."""

    payload = patch_schema.load(request.get_json(silent=True) or {})
    with get_signup_sessions().hold(session_id) as wizard:
        _apply_patch(wizard, payload)
        return json_response({"data": _state(session_id, wizard)})


@bp.delete("/<session_id>")
@timing
async def cancel(session_id: str):
    """Abandon the session and discard its draft."""

    wizard = get_signup_sessions().discard(session_id)
    if wizard is not None:
        await wizard.aclose()
    return no_content()


@bp.post("/<session_id>/next")
@timing
async def next_step(session_id: str):
    """
    Advance to the following step.

    Entering the verification step sends the confirmation email. A blocked
    move answers 422 with the active step's field errors, or 409 while the
    verification step cannot be left yet.
    """

    with get_signup_sessions().hold(session_id) as wizard:
        if wizard.current is Step.COMPLETE:
            raise Conflict("Signup is already complete.", code="signup_complete")
        if wizard.errors:
            raise from_service_error(FieldValidationError(wizard.errors, STEP_INVALID_MESSAGE))
        if not await wizard.next():
            flow = wizard.verification
            raise Conflict(
                flow.error_message or "Please send the verification email first.",
                code="verification_incomplete",
            )
        return json_response({"data": _state(session_id, wizard)})


@bp.post("/<session_id>/back")
@timing
def previous_step(session_id: str):
    with get_signup_sessions().hold(session_id) as wizard:
        wizard.back()
        return json_response({"data": _state(session_id, wizard)})


@bp.post("/<session_id>/verification")
@timing
async def send_verification(session_id: str):
    """Send (or retry sending) the confirmation email."""

    with get_signup_sessions().hold(session_id) as wizard:
        if wizard.current is not Step.VERIFICATION:
            raise Conflict("The verification step is not active.", code="wrong_step")
        await wizard.verification.send()
        return json_response({"data": _state(session_id, wizard)})


@bp.post("/<session_id>/verification/resend")
@timing
async def resend_verification(session_id: str):
    with get_signup_sessions().hold(session_id) as wizard:
        if not wizard.verification.email_sent:
            raise Conflict("No verification email has been sent yet.", code="verification_not_sent")
        notice = await wizard.verification.resend()
        return json_response(
            {"data": _state(session_id, wizard), "notice": notice_schema.dump(notice)}
        )


@bp.post("/<session_id>/verification/check")
@timing
async def check_verification(session_id: str):
    with get_signup_sessions().hold(session_id) as wizard:
        await wizard.verification.check_status()
        return json_response({"data": _state(session_id, wizard)})


@bp.post("/<session_id>/finish")
@timing
async def finish(session_id: str):
    """Leave the completed wizard; the session is discarded."""

    sessions = get_signup_sessions()
    with sessions.hold(session_id) as wizard:
        if not await wizard.back_to_login():
            raise APIError("Signup is not complete yet.", status_code=409, code="signup_incomplete")
    sessions.discard(session_id)
    log.info("signup.finished", extra={"session_id": session_id})
    return json_response({"data": {"id": session_id, "finished": True}})
