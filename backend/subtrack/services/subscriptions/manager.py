"""
Subscription manager.

Owns the in-memory subscription list of one user and orchestrates CRUD
against the ``subscriptions`` table:

- mutations (add/update/remove) are single-flight: a second call while one
  is running is rejected immediately with :class:`BusyError`;
- the list changes only after the store confirms and returns the canonical row;
- ``load`` retries transient failures with exponential backoff (tenacity);
- ``statistics`` summarizes the loaded list without touching the store.

Every public operation returns an :class:`OperationResult`; no exception
crosses this boundary.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import date, timedelta
from enum import Enum

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from subtrack.schemas.subscription import load_subscription, load_subscriptions
from subtrack.services._shared.errors import (
    PAYMENT_DAY_CONSTRAINT_MESSAGE,
    PRICE_CONSTRAINT_MESSAGE,
    AuthRequiredError,
    BusyError,
    CancelledOperation,
    ConflictError,
    FieldValidationError,
    NotFoundError,
    ServiceError,
    classify_error,
    is_transient,
)
from subtrack.services._shared.observability import ObservabilityContext, maybe_timed
from subtrack.services._shared.ports import TableStore
from subtrack.services._shared.scope import ScopeClosed, TaskScope
from subtrack.services.subscriptions.dto import (
    Currency,
    CurrencyTotal,
    OperationResult,
    Subscription,
    SubscriptionForm,
    SubscriptionStatistics,
)

logger = logging.getLogger(__name__)

TABLE = "subscriptions"

REQUIRED_FIELDS_MESSAGE = (
    "Required information is missing. Please enter the service name, price and renewal date."
)


class OperationState(Enum):
    IDLE = "idle"
    ADDING = "adding"
    UPDATING = "updating"
    DELETING = "deleting"


_TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.IDLE: frozenset(
        {OperationState.ADDING, OperationState.UPDATING, OperationState.DELETING}
    ),
    OperationState.ADDING: frozenset({OperationState.IDLE}),
    OperationState.UPDATING: frozenset({OperationState.IDLE}),
    OperationState.DELETING: frozenset({OperationState.IDLE}),
}


def _duplicate_message(name: str) -> str:
    return f'A subscription named "{name.strip()}" already exists. Please use a different name.'


class SubscriptionManager:
    """
    CRUD orchestration for one user's subscriptions.

    :param store: Table store holding the ``subscriptions`` rows.
    :param user_id: Owner; operations fail with :class:`AuthRequiredError` without one.
    :param scope: Cancellation scope owning the store calls.
    :param retry_base_delay: First backoff delay in seconds; doubled per retry.
    :param max_retries: Retries after the first ``load`` attempt.
    :param sleep: Awaitable sleep used between retries, injectable for tests.
    """

    def __init__(
        self,
        store: TableStore,
        *,
        user_id: str | None,
        scope: TaskScope | None = None,
        retry_base_delay: float = 1.0,
        max_retries: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        observer: ObservabilityContext | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.scope = scope or TaskScope("subscriptions")
        self.retry_base_delay = retry_base_delay
        self.max_retries = max_retries
        self.observer = observer
        self._sleep = sleep
        self.subscriptions: list[Subscription] = []
        self.state = OperationState.IDLE
        self.loading = False
        self.error: str | None = None

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get(self, local_id: str) -> Subscription | None:
        return next((sub for sub in self.subscriptions if sub.id == local_id), None)

    def find_by_database_id(self, database_id: str) -> Subscription | None:
        return next((sub for sub in self.subscriptions if sub.database_id == database_id), None)

    def clear_error(self) -> None:
        self.error = None

    def statistics(self, *, today: date | None = None, window_days: int = 7) -> SubscriptionStatistics:
        """
        Summarize the loaded subscriptions.

        :param today: Reference day for upcoming renewals; defaults to the
            current date.
        :param window_days: Renewals up to this many days after ``today`` count
            as upcoming.
        :returns: Counts, per-currency totals of active subscriptions and the
            upcoming renewals.
        """
        today = today or date.today()
        horizon = today + timedelta(days=window_days)
        active = [sub for sub in self.subscriptions if sub.is_active]

        counts = {currency: 0 for currency in Currency}
        sums = {currency: 0.0 for currency in Currency}
        invalid: list[Subscription] = []
        for sub in active:
            if not math.isfinite(sub.price) or sub.price <= 0:
                invalid.append(sub)
                continue
            counts[sub.currency] += 1
            sums[sub.currency] += sub.price

        if invalid:
            logger.warning("subscriptions.statistics_skipped count=%d", len(invalid))
        upcoming = sorted(
            (sub for sub in active if today <= sub.renew_date <= horizon),
            key=lambda sub: (sub.renew_date, sub.name.lower()),
        )
        return SubscriptionStatistics(
            subscription_count=len(self.subscriptions),
            active_count=len(active),
            totals={c: CurrencyTotal(counts[c], round(sums[c], 2)) for c in Currency},
            upcoming=upcoming,
            invalid=invalid,
        )

    # ------------------------------------------------------------------ #
    # Load
    # ------------------------------------------------------------------ #

    async def load(self) -> OperationResult:
        """
        Fetch every subscription of the user, newest first.

        Transient failures are retried ``max_retries`` times with delays
        ``retry_base_delay * 2**n``; the mapped message of the last failure is
        surfaced when retries run out.
        """
        precheck = self._precheck()
        if precheck is not None:
            return OperationResult.failure(precheck)

        self.loading = True
        self.error = None
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_base_delay, exp_base=2, min=0),
            retry=retry_if_exception(is_transient),
            sleep=self._sleep,
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            with maybe_timed(self.observer, "subscriptions.load"):
                async for attempt in retrying:
                    with attempt:
                        rows = await self.scope.run(
                            self.store.select(
                                TABLE,
                                filters={"user_id": self.user_id},
                                order_by="created_at",
                                descending=True,
                            )
                        )
        except ScopeClosed:
            return OperationResult.failure(CancelledOperation())
        except Exception as exc:
            return self._fail("load", exc)
        finally:
            if not self.scope.closed:
                self.loading = False

        self.subscriptions = load_subscriptions(rows)
        logger.info("subscriptions.loaded count=%d", len(self.subscriptions))
        return OperationResult(ok=True, subscriptions=list(self.subscriptions))

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    async def add(self, form: SubscriptionForm) -> OperationResult:
        """
        Insert a subscription and prepend the stored row.

        Required fields, price, payment day and duplicate names are checked
        before the store is called.
        """
        precheck = self._precheck()
        if precheck is not None:
            return OperationResult.failure(precheck)
        if not self._begin(OperationState.ADDING):
            return OperationResult.failure(BusyError())
        try:
            self._check_form(form)
            normalized = form.name.strip().lower()
            if any(sub.name.strip().lower() == normalized for sub in self.subscriptions):
                raise ConflictError(_duplicate_message(form.name))

            with maybe_timed(self.observer, "subscriptions.add"):
                row = await self.scope.run(
                    self.store.insert(TABLE, {"user_id": self.user_id, **form.to_row()})
                )
            created = load_subscription(row)
            self.subscriptions.insert(0, created)
            logger.info("subscriptions.added database_id=%s", created.database_id)
            return OperationResult(ok=True, subscription=created)
        except ScopeClosed:
            return OperationResult.failure(CancelledOperation())
        except Exception as exc:
            return self._fail("add", exc)
        finally:
            self._end()

    async def update(self, local_id: str, form: SubscriptionForm) -> OperationResult:
        """Send the full field set for ``local_id`` and replace the entry in place."""
        precheck = self._precheck()
        if precheck is not None:
            return OperationResult.failure(precheck)
        if not self._begin(OperationState.UPDATING):
            return OperationResult.failure(BusyError())
        try:
            current = self.get(local_id)
            if current is None or not current.database_id:
                raise NotFoundError("The subscription to update could not be found.")
            self._check_form(form)

            with maybe_timed(self.observer, "subscriptions.update"):
                row = await self.scope.run(
                    self.store.update(
                        TABLE,
                        form.to_row(),
                        filters={"id": current.database_id, "user_id": self.user_id},
                    )
                )
            updated = dataclasses.replace(load_subscription(row), id=current.id)
            self.subscriptions = [updated if sub.id == local_id else sub for sub in self.subscriptions]
            logger.info("subscriptions.updated database_id=%s", updated.database_id)
            return OperationResult(ok=True, subscription=updated)
        except ScopeClosed:
            return OperationResult.failure(CancelledOperation())
        except Exception as exc:
            return self._fail("update", exc)
        finally:
            self._end()

    async def remove(self, local_id: str) -> OperationResult:
        precheck = self._precheck()
        if precheck is not None:
            return OperationResult.failure(precheck)
        if not self._begin(OperationState.DELETING):
            return OperationResult.failure(BusyError())
        try:
            current = self.get(local_id)
            if current is None or not current.database_id:
                raise NotFoundError("The subscription to delete could not be found.")
            with maybe_timed(self.observer, "subscriptions.remove"):
                await self.scope.run(
                    self.store.delete(
                        TABLE, filters={"id": current.database_id, "user_id": self.user_id}
                    )
                )
            self.subscriptions = [sub for sub in self.subscriptions if sub.id != local_id]
            logger.info("subscriptions.removed database_id=%s", current.database_id)
            return OperationResult(ok=True, subscription=current)
        except ScopeClosed:
            return OperationResult.failure(CancelledOperation())
        except Exception as exc:
            return self._fail("remove", exc)
        finally:
            self._end()

    async def aclose(self) -> None:
        await self.scope.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _precheck(self) -> ServiceError | None:
        if self.scope.closed:
            return CancelledOperation()
        if not self.user_id:
            return AuthRequiredError()
        return None

    def _begin(self, target: OperationState) -> bool:
        if target not in _TRANSITIONS[self.state]:
            logger.info(
                "subscriptions.busy state=%s rejected=%s", self.state.value, target.value
            )
            return False
        self.state = target
        return True

    def _end(self) -> None:
        self.state = OperationState.IDLE

    @staticmethod
    def _check_form(form: SubscriptionForm) -> None:
        if not form.name or not form.name.strip() or not form.price or not form.renew_date:
            raise FieldValidationError({"form": REQUIRED_FIELDS_MESSAGE}, REQUIRED_FIELDS_MESSAGE)
        if form.price <= 0:
            raise FieldValidationError({"price": PRICE_CONSTRAINT_MESSAGE})
        if form.payment_date is not None and not 1 <= form.payment_date <= 31:
            raise FieldValidationError({"payment_date": PAYMENT_DAY_CONSTRAINT_MESSAGE})

    def _fail(self, operation: str, exc: Exception) -> OperationResult:
        err = classify_error(exc)
        if not self.scope.closed:
            self.error = err.message
        if isinstance(err, FieldValidationError | ConflictError | BusyError):
            logger.info("subscriptions.%s_rejected: %s", operation, err)
        else:
            logger.error(
                "subscriptions.%s_failed: %s",
                operation,
                exc,
                extra={"operation": f"subscriptions.{operation}"},
            )
        if self.observer is not None:
            self.observer.record_error(f"subscriptions.{operation}", exc)
        return OperationResult.failure(err)
