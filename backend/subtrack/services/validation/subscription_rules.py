"""
Validation and sanitization for subscription forms.

The rules mirror the check constraints enforced by the ``subscriptions`` table
(price, payment day) plus a few purely client-side conveniences (duplicate
names, URL auto-prefix). The server stays the authority: these checks only
spare a round trip.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol
from urllib.parse import urlsplit

from subtrack.services.subscriptions.dto import (
    DEFAULT_COLOR,
    DEFAULT_ICON,
    PRICE_LIMITS,
    Currency,
    SubscriptionForm,
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEADING_NUMBER = re.compile(r"\d*\.?\d+|\d+")

SERVICE_NAME_MAX_LENGTH = 50
CATEGORY_MAX_LENGTH = 20
PAYMENT_CARD_MAX_LENGTH = 50

RENEW_DATE_LABEL = "Renewal date"
START_DATE_LABEL = "Start date"


class NamedRecord(Protocol):
    id: str
    name: str


@dataclass(slots=True)
class FormReport:
    """Per-field errors and warnings of one form validation pass."""

    errors: dict[str, str] = field(default_factory=dict)
    warnings: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# --------------------------------------------------------------------------- #
# Coercion helpers
# --------------------------------------------------------------------------- #


def parse_price(value: Any) -> float | None:
    """Strip everything but digits and dots, then read the leading number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.]", "", str(value))
    match = _LEADING_NUMBER.match(cleaned)
    return float(match.group(0)) if match else None


def parse_day(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else None


def parse_iso_date(value: str | None) -> date | None:
    if not value or not DATE_PATTERN.fullmatch(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def normalize_url(value: str) -> str:
    url = value.strip()
    if url and not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


# --------------------------------------------------------------------------- #
# Field rules
# --------------------------------------------------------------------------- #


def validate_service_name(
    name: str | None,
    existing: Iterable[NamedRecord] = (),
    editing_id: str | None = None,
) -> str | None:
    """Require a name, cap its length, and reject case-insensitive duplicates."""
    if not name or not name.strip():
        return "Please enter a service name."
    trimmed = name.strip()
    if len(trimmed) > SERVICE_NAME_MAX_LENGTH:
        return f"Service name must be at most {SERVICE_NAME_MAX_LENGTH} characters."
    normalized = trimmed.lower()
    for sub in existing:
        if sub.name.strip().lower() == normalized and sub.id != editing_id:
            return f'A subscription named "{trimmed}" already exists.'
    return None


def validate_currency(currency: str | None) -> str | None:
    if currency not in {c.value for c in Currency}:
        return "This currency is not supported."
    return None


def validate_price(value: Any, currency: str | None = Currency.KRW.value) -> str | None:
    if value is None or value == "":
        return "Please enter a price."
    price = parse_price(value)
    if price is None:
        return "Please enter a valid price."
    if price <= 0:
        return "Price must be greater than 0."
    try:
        limit = PRICE_LIMITS[Currency(currency)]
    except ValueError:
        return None  # unsupported currency is reported by validate_currency
    if price > limit:
        return f"Price is too large. The maximum is {limit:,} {currency}."
    return None


def validate_date(
    value: str | None,
    label: str,
    *,
    not_in_past: bool = False,
    today: date | None = None,
) -> str | None:
    if not value:
        return f"Please enter the {label.lower()}."
    if not DATE_PATTERN.fullmatch(value):
        return f"{label} must use the YYYY-MM-DD format."
    parsed = parse_iso_date(value)
    if parsed is None:
        return f"{label} is not a valid date."
    if not_in_past and parsed < (today or date.today()):
        return f"{label} cannot be in the past."
    return None


@dataclass(frozen=True, slots=True)
class PaymentDayCheck:
    error: str | None = None
    warning: str | None = None


def check_payment_date(value: Any, renew_date: str | None = None) -> PaymentDayCheck:
    """
    Validate the day of month a payment is charged.

    The day must be 1..31 and, when the renewal date parses, not beyond that
    month's length. An unparsable renewal date only yields a warning.
    """
    if value is None or value == "":
        return PaymentDayCheck()
    day = parse_day(value)
    if day is None:
        return PaymentDayCheck(error="Payment day must be a number.")
    if day < 1 or day > 31:
        return PaymentDayCheck(error="Payment day must be between 1 and 31.")
    if renew_date:
        renew = parse_iso_date(renew_date)
        if renew is None:
            return PaymentDayCheck(
                warning="Set a valid renewal date first for a more precise payment day check."
            )
        month_days = calendar.monthrange(renew.year, renew.month)[1]
        if day > month_days:
            return PaymentDayCheck(error=f"That month only has {month_days} days.")
    return PaymentDayCheck()


def validate_payment_date(value: Any, renew_date: str | None = None) -> str | None:
    return check_payment_date(value, renew_date).error


def validate_url(value: str | None) -> str | None:
    if not value or not value.strip():
        return None  # optional
    candidate = normalize_url(value)
    try:
        parts = urlsplit(candidate)
        parts.port  # noqa: B018 - raises on malformed ports
    except ValueError:
        return "Please enter a valid URL."
    host = parts.hostname or ""
    if parts.scheme not in ("http", "https") or not host or re.search(r"\s", parts.netloc):
        return "Please enter a valid URL."
    return None


# --------------------------------------------------------------------------- #
# Whole form
# --------------------------------------------------------------------------- #


def validate_subscription_form(
    form: SubscriptionForm,
    existing: Iterable[NamedRecord] = (),
    editing_id: str | None = None,
    *,
    require_future_renewal: bool = False,
    today: date | None = None,
) -> FormReport:
    """
    Run every field rule against ``form``.

    :param form: Sanitized form data.
    :param existing: Records used for the duplicate-name check.
    :param editing_id: Local id of the record being edited (excluded from the check).
    :param require_future_renewal: Reject renewal dates before ``today`` (new subscriptions).
    :param today: Reference date, defaults to :meth:`date.today`.
    :returns: Collected errors and warnings.
    :rtype: FormReport
    """
    report = FormReport()

    def _put(name: str, message: str | None) -> None:
        if message:
            report.errors[name] = message

    _put("name", validate_service_name(form.name, existing, editing_id))
    _put("price", validate_price(form.price, form.currency))
    _put("currency", validate_currency(form.currency))
    _put(
        "renew_date",
        validate_date(
            form.renew_date, RENEW_DATE_LABEL, not_in_past=require_future_renewal, today=today
        ),
    )
    if form.start_date:
        _put("start_date", validate_date(form.start_date, START_DATE_LABEL))

    payment = check_payment_date(form.payment_date, form.renew_date)
    _put("payment_date", payment.error)
    if payment.warning:
        report.warnings["payment_date"] = payment.warning

    _put("url", validate_url(form.url))
    if form.category and len(form.category) > CATEGORY_MAX_LENGTH:
        _put("category", f"Category must be at most {CATEGORY_MAX_LENGTH} characters.")
    if form.payment_card and len(form.payment_card) > PAYMENT_CARD_MAX_LENGTH:
        _put("payment_card", f"Payment card must be at most {PAYMENT_CARD_MAX_LENGTH} characters.")
    return report


def sanitize_subscription_input(raw: Mapping[str, Any]) -> SubscriptionForm:
    """
    Coerce loosely-typed input into a :class:`SubscriptionForm`.

    Strings are trimmed, the price keeps only digits and dots, unknown
    currencies fall back to KRW, out-of-range payment days are dropped and
    URLs gain an ``https://`` prefix when they lack a scheme.
    """

    def _text(key: str) -> str | None:
        value = raw.get(key)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    currency = raw.get("currency")
    day = parse_day(raw.get("payment_date"))
    url = _text("url")
    return SubscriptionForm(
        name=_text("name") or "",
        price=parse_price(raw.get("price")) or 0.0,
        currency=currency if currency in {c.value for c in Currency} else Currency.KRW.value,
        renew_date=_text("renew_date") or "",
        start_date=_text("start_date"),
        payment_date=day if day is not None and 1 <= day <= 31 else None,
        payment_card=_text("payment_card"),
        url=normalize_url(url) if url else None,
        color=_text("color") or DEFAULT_COLOR,
        category=_text("category"),
        icon=_text("icon") or DEFAULT_ICON,
        icon_image_url=_text("icon_image_url"),
        is_active=raw.get("is_active") is not False,
    )
