"""Subscription endpoints.

Requests act with the caller's bearer token, so row-level security on the
hosted store scopes every query to the caller.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from flask import Blueprint, current_app, request

from subtrack.api.deps import Caller, authenticate, json_response, no_content, raise_for_result, timing
from subtrack.core.errors import NotFound, from_service_error
from subtrack.core.extensions import get_gateway
from subtrack.schemas import (
    StatisticsQuerySchema,
    SubscriptionFormSchema,
    SubscriptionSchema,
    SubscriptionStatisticsSchema,
)
from subtrack.services._shared.errors import FieldValidationError
from subtrack.services._shared.scope import TaskScope
from subtrack.services.subscriptions.dto import Subscription
from subtrack.services.subscriptions.manager import SubscriptionManager
from subtrack.services.validation.subscription_rules import validate_subscription_form

bp = Blueprint("subscriptions", __name__)

form_schema = SubscriptionFormSchema()
subscription_schema = SubscriptionSchema()
subscription_list_schema = SubscriptionSchema(many=True)
statistics_query_schema = StatisticsQuerySchema()
statistics_schema = SubscriptionStatisticsSchema()


@asynccontextmanager
async def _loaded_manager(caller: Caller) -> AsyncIterator[SubscriptionManager]:
    """Yield a manager holding the caller's current subscriptions."""

    config = current_app.config
    async with get_gateway().open_store(caller.access_token) as store:
        async with TaskScope("subscriptions") as scope:
            manager = SubscriptionManager(
                store,
                user_id=caller.user_id,
                scope=scope,
                retry_base_delay=float(config["RETRY_BASE_DELAY"]),
                max_retries=int(config["RETRY_MAX_ATTEMPTS"]),
            )
            raise_for_result(await manager.load())
            yield manager


def _find(manager: SubscriptionManager, database_id: str) -> Subscription:
    subscription = manager.find_by_database_id(database_id)
    if subscription is None:
        raise NotFound("The requested subscription could not be found.")
    return subscription


@bp.get("")
@timing
async def list_subscriptions():
    """Return the caller's subscriptions, newest first."""

    caller = await authenticate()
    async with _loaded_manager(caller) as manager:
        data = subscription_list_schema.dump(manager.subscriptions)
    return json_response({"data": data, "meta": {"total": len(data)}})


@bp.get("/statistics")
@timing
async def subscription_statistics():
    """Counts, per-currency totals and renewals due in the next ``days`` days."""

    caller = await authenticate()
    query = statistics_query_schema.load(request.args)
    async with _loaded_manager(caller) as manager:
        stats = manager.statistics(window_days=query["days"])
    return json_response({"data": statistics_schema.dump(stats), "meta": {"days": query["days"]}})


@bp.post("")
@timing
async def create_subscription():
    """Validate and store a new subscription."""

    caller = await authenticate()
    form = form_schema.load(request.get_json(silent=True) or {})
    async with _loaded_manager(caller) as manager:
        report = validate_subscription_form(
            form, manager.subscriptions, require_future_renewal=True
        )
        if not report.is_valid:
            raise from_service_error(FieldValidationError(report.errors))
        result = await manager.add(form)
        raise_for_result(result)
    body = {"data": subscription_schema.dump(result.subscription), "warnings": report.warnings}
    return json_response(body, status=201)


@bp.put("/<database_id>")
@timing
async def update_subscription(database_id: str):
    """Replace every field of an existing subscription."""

    caller = await authenticate()
    form = form_schema.load(request.get_json(silent=True) or {})
    async with _loaded_manager(caller) as manager:
        current = _find(manager, database_id)
        report = validate_subscription_form(form, manager.subscriptions, editing_id=current.id)
        if not report.is_valid:
            raise from_service_error(FieldValidationError(report.errors))
        result = await manager.update(current.id, form)
        raise_for_result(result)
    body = {"data": subscription_schema.dump(result.subscription), "warnings": report.warnings}
    return json_response(body)


@bp.delete("/<database_id>")
@timing
async def delete_subscription(database_id: str):
    caller = await authenticate()
    async with _loaded_manager(caller) as manager:
        current = _find(manager, database_id)
        raise_for_result(await manager.remove(current.id))
    return no_content()
