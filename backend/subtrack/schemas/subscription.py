"""Subscription schemas: raw store rows in, API payloads in and out."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validate

from subtrack.services.subscriptions.dto import (
    DEFAULT_COLOR,
    DEFAULT_ICON,
    Currency,
    Subscription,
    SubscriptionForm,
)
from subtrack.services.validation.subscription_rules import sanitize_subscription_input

logger = logging.getLogger(__name__)

_CURRENCIES = {c.value for c in Currency}


class SubscriptionRecordSchema(Schema):
    """
    Normalize one ``subscriptions`` row into a :class:`Subscription`.

    This is the only place raw store payloads become typed records. The row
    ``id`` becomes ``database_id``; a fresh local id is generated on every load.
    """

    class Meta:
        unknown = EXCLUDE

    id = fields.Raw(required=True)
    name = fields.String(required=True)
    price = fields.Float(required=True)
    currency = fields.String(load_default=Currency.KRW.value)
    renew_date = fields.Date(required=True)
    start_date = fields.Date(allow_none=True, load_default=None)
    payment_date = fields.Integer(allow_none=True, load_default=None)
    payment_card = fields.String(allow_none=True, load_default=None)
    url = fields.String(allow_none=True, load_default=None)
    color = fields.String(allow_none=True, load_default=None)
    category = fields.String(allow_none=True, load_default=None)
    icon = fields.String(allow_none=True, load_default=None)
    icon_image_url = fields.String(allow_none=True, load_default=None)
    is_active = fields.Boolean(allow_none=True, load_default=True)
    created_at = fields.DateTime(allow_none=True, load_default=None)
    updated_at = fields.DateTime(allow_none=True, load_default=None)

    @pre_load
    def drop_nulls(self, data: Mapping[str, Any], **_: Any) -> dict[str, Any]:
        # A null currency or price in legacy rows falls back to the defaults
        cleaned = dict(data)
        if cleaned.get("currency") not in _CURRENCIES:
            cleaned["currency"] = Currency.KRW.value
        return cleaned

    @post_load
    def make_subscription(self, data: dict[str, Any], **_: Any) -> Subscription:
        return Subscription(
            id=uuid.uuid4().hex,
            database_id=str(data["id"]),
            name=data["name"],
            price=data["price"],
            currency=Currency(data["currency"]),
            renew_date=data["renew_date"],
            start_date=data["start_date"],
            payment_date=data["payment_date"],
            payment_card=data["payment_card"],
            url=data["url"],
            color=data["color"] or DEFAULT_COLOR,
            category=data["category"],
            icon=data["icon"] or DEFAULT_ICON,
            icon_image_url=data["icon_image_url"],
            is_active=data["is_active"] is not False,
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


_record_schema = SubscriptionRecordSchema()


def load_subscription(row: Mapping[str, Any]) -> Subscription:
    """Normalize a single row; raises :class:`marshmallow.ValidationError` when malformed."""
    return _record_schema.load(row)


def load_subscriptions(rows: Iterable[Mapping[str, Any]]) -> list[Subscription]:
    """Normalize many rows, skipping (and logging) the ones that do not parse."""
    result: list[Subscription] = []
    for row in rows:
        try:
            result.append(_record_schema.load(row))
        except ValidationError as exc:
            logger.warning("subscriptions.row_skipped id=%s errors=%s", row.get("id"), exc.messages)
    return result


class SubscriptionFormSchema(Schema):
    """
    Loosely-typed create/update payload.

    Values are kept raw and coerced by
    :func:`~subtrack.services.validation.subscription_rules.sanitize_subscription_input`.
    """

    class Meta:
        unknown = EXCLUDE

    name = fields.Raw(load_default=None)
    price = fields.Raw(load_default=None)
    currency = fields.Raw(load_default=None)
    renew_date = fields.Raw(load_default=None)
    start_date = fields.Raw(load_default=None)
    payment_date = fields.Raw(load_default=None)
    payment_card = fields.Raw(load_default=None)
    url = fields.Raw(load_default=None)
    color = fields.Raw(load_default=None)
    category = fields.Raw(load_default=None)
    icon = fields.Raw(load_default=None)
    icon_image_url = fields.Raw(load_default=None)
    is_active = fields.Raw(load_default=True)

    @post_load
    def make_form(self, data: dict[str, Any], **_: Any) -> SubscriptionForm:
        return sanitize_subscription_input(data)


class SubscriptionSchema(Schema):
    """Public representation of a subscription."""

    id = fields.String()
    database_id = fields.String()
    name = fields.String()
    price = fields.Float()
    currency = fields.Function(lambda sub: sub.currency.value)
    renew_date = fields.Date()
    start_date = fields.Date(allow_none=True)
    payment_date = fields.Integer(allow_none=True)
    payment_card = fields.String(allow_none=True)
    url = fields.String(allow_none=True)
    color = fields.String()
    category = fields.String(allow_none=True)
    icon = fields.String()
    icon_image_url = fields.String(allow_none=True)
    is_active = fields.Boolean()
    created_at = fields.DateTime(allow_none=True)
    updated_at = fields.DateTime(allow_none=True)


class StatisticsQuerySchema(Schema):
    """Query string of the statistics endpoint."""

    class Meta:
        unknown = EXCLUDE

    days = fields.Integer(load_default=7, validate=validate.Range(min=0, max=366))


class SubscriptionStatisticsSchema(Schema):
    subscription_count = fields.Integer()
    active_count = fields.Integer()
    totals = fields.Method("dump_totals")
    upcoming = fields.List(fields.Nested(SubscriptionSchema))
    invalid = fields.Function(lambda stats: [sub.database_id for sub in stats.invalid])
    has_errors = fields.Boolean()

    def dump_totals(self, stats) -> dict[str, dict[str, Any]]:
        return {
            currency.value: {"count": total.count, "total": total.total}
            for currency, total in stats.totals.items()
        }
