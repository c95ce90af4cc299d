"""
DTOs for the subscription manager.

``SubscriptionForm`` is sanitized user input heading to the store;
``Subscription`` is the normalized record the manager keeps in memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from subtrack.services._shared.errors import ServiceError

DEFAULT_COLOR = "#3B82F6"
DEFAULT_ICON = "📱"


class Currency(str, Enum):
    """Supported billing currencies."""

    KRW = "KRW"
    USD = "USD"
    EUR = "EUR"
    JPY = "JPY"


# Upper bound per currency for a single subscription price
PRICE_LIMITS: dict[Currency, int] = {
    Currency.KRW: 10_000_000,
    Currency.USD: 10_000,
    Currency.EUR: 10_000,
    Currency.JPY: 1_000_000,
}

# --------------------------------------------------------------------------- #
# Input
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class SubscriptionForm:
    """
    Sanitized subscription fields as entered by the user.

    Dates stay strings here: parsing and range checks belong to the validation
    rules, and the store accepts ISO ``YYYY-MM-DD`` text.
    """

    name: str = ""
    price: float = 0.0
    currency: str = Currency.KRW.value
    renew_date: str = ""
    start_date: str | None = None
    payment_date: int | None = None
    payment_card: str | None = None
    url: str | None = None
    color: str = DEFAULT_COLOR
    category: str | None = None
    icon: str = DEFAULT_ICON
    icon_image_url: str | None = None
    is_active: bool = True

    def to_row(self) -> dict[str, Any]:
        """Full column set sent on insert and update (no partial patches)."""
        return {
            "name": self.name.strip(),
            "icon": self.icon or DEFAULT_ICON,
            "icon_image_url": self.icon_image_url or None,
            "price": float(self.price),
            "currency": self.currency or Currency.KRW.value,
            "renew_date": self.renew_date,
            "start_date": self.start_date or None,
            "payment_date": int(self.payment_date) if self.payment_date else None,
            "payment_card": self.payment_card.strip() if self.payment_card else None,
            "url": self.url.strip() if self.url else None,
            "color": self.color or DEFAULT_COLOR,
            "category": self.category.strip() if self.category else None,
            "is_active": self.is_active is not False,
        }


# --------------------------------------------------------------------------- #
# Output
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class Subscription:
    """
    Normalized subscription record.

    :ivar id: Client-local correlation id, regenerated on every load.
    :ivar database_id: Persistence-assigned key.
    """

    id: str
    database_id: str | None
    name: str
    price: float
    currency: Currency
    renew_date: date
    start_date: date | None = None
    payment_date: int | None = None
    payment_card: str | None = None
    url: str | None = None
    color: str = DEFAULT_COLOR
    category: str | None = None
    icon: str = DEFAULT_ICON
    icon_image_url: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Outcome of a manager operation.

    :ivar ok: ``True`` when the operation completed.
    :ivar error: Classified failure when ``ok`` is ``False``.
    :ivar subscription: Affected record for add/update.
    """

    ok: bool
    error: ServiceError | None = None
    subscription: Subscription | None = None
    subscriptions: list[Subscription] = field(default_factory=list)

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error else None

    @classmethod
    def failure(cls, error: ServiceError) -> OperationResult:
        return cls(ok=False, error=error)


@dataclass(frozen=True, slots=True)
class CurrencyTotal:
    """Number of active subscriptions billed in one currency and their summed price."""

    count: int = 0
    total: float = 0.0


@dataclass(frozen=True, slots=True)
class SubscriptionStatistics:
    """
    Summary of a subscription list.

    Totals are kept per currency; no conversion between currencies happens here.

    :ivar subscription_count: Every subscription, active or not.
    :ivar active_count: Subscriptions not explicitly deactivated.
    :ivar totals: Active subscriptions per currency; every currency is present.
    :ivar upcoming: Active subscriptions renewing inside the window, soonest first.
    :ivar invalid: Active subscriptions left out of the totals because their
        price is not a finite positive number.
    """

    subscription_count: int
    active_count: int
    totals: dict[Currency, CurrencyTotal]
    upcoming: list[Subscription] = field(default_factory=list)
    invalid: list[Subscription] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.invalid)
