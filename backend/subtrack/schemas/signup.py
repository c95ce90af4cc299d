"""Signup wizard schemas."""

from __future__ import annotations

from typing import Any

from marshmallow import RAISE, Schema, fields


class SignupPatchSchema(Schema):
    """
    Partial update of the signup draft.

    Values are not validated here: the wizard re-runs the field rules after
    every change and reports them per step.
    """

    class Meta:
        unknown = RAISE

    email = fields.String()
    password = fields.String()
    confirm_password = fields.String()
    first_name = fields.String()
    last_name = fields.String()
    phone_number = fields.String(allow_none=True)
    agree_to_terms = fields.Boolean()
    agree_to_marketing = fields.Boolean()


class FieldErrorSchema(Schema):
    field = fields.String()
    message = fields.String()


class StepSchema(Schema):
    id = fields.Integer()
    title = fields.String()
    description = fields.String()
    is_completed = fields.Boolean()
    is_current = fields.Boolean()


class NoticeSchema(Schema):
    kind = fields.Function(lambda notice: notice.kind.value)
    message = fields.String()


class SignupStateSchema(Schema):
    """Public view of one wizard session (passwords are never echoed)."""

    id = fields.String()
    current_step = fields.Function(lambda state: int(state["wizard"].current))
    steps = fields.Function(lambda state: StepSchema(many=True).dump(state["wizard"].steps))
    draft = fields.Function(lambda state: state["wizard"].draft.public_dict())
    errors = fields.Function(lambda state: FieldErrorSchema(many=True).dump(state["wizard"].errors))
    can_advance = fields.Function(lambda state: state["wizard"].can_advance())
    verification = fields.Method("dump_verification")

    def dump_verification(self, state: dict[str, Any]) -> dict[str, Any]:
        flow = state["wizard"].verification
        return {
            "status": flow.status.value,
            "email_sent": flow.email_sent,
            "error_message": flow.error_message,
            "can_proceed": flow.can_proceed,
        }
