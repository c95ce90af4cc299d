"""Pure validation rules for signup, subscription and profile forms."""

from .rules import (
    validate_confirm_password,
    validate_email,
    validate_name,
    validate_password,
    validate_phone_number,
    validate_signup_draft,
    validate_terms,
)
from .profile_rules import (
    sanitize_profile_changes,
    validate_profile_changes,
    validate_username,
)
from .subscription_rules import (
    FormReport,
    sanitize_subscription_input,
    validate_currency,
    validate_date,
    validate_payment_date,
    validate_price,
    validate_service_name,
    validate_subscription_form,
    validate_url,
)

__all__ = [
    "FormReport",
    "sanitize_profile_changes",
    "sanitize_subscription_input",
    "validate_confirm_password",
    "validate_currency",
    "validate_date",
    "validate_email",
    "validate_name",
    "validate_password",
    "validate_payment_date",
    "validate_phone_number",
    "validate_price",
    "validate_profile_changes",
    "validate_service_name",
    "validate_signup_draft",
    "validate_subscription_form",
    "validate_terms",
    "validate_url",
    "validate_username",
]
