"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import AuthUserSchema, LoginSchema, SessionSchema
from .notification import (
    NotificationCreateSchema,
    NotificationRecordSchema,
    NotificationSchema,
    load_notifications,
)
from .profile import ProfileRecordSchema, ProfileSchema, ProfileUpdateSchema, load_profile
from .signup import NoticeSchema, SignupPatchSchema, SignupStateSchema
from .subscription import (
    StatisticsQuerySchema,
    SubscriptionFormSchema,
    SubscriptionRecordSchema,
    SubscriptionSchema,
    SubscriptionStatisticsSchema,
    load_subscription,
    load_subscriptions,
)

__all__ = [
    "AuthUserSchema",
    "LoginSchema",
    "SessionSchema",
    "NotificationCreateSchema",
    "NotificationRecordSchema",
    "NotificationSchema",
    "load_notifications",
    "NoticeSchema",
    "ProfileRecordSchema",
    "ProfileSchema",
    "ProfileUpdateSchema",
    "load_profile",
    "SignupPatchSchema",
    "SignupStateSchema",
    "SubscriptionFormSchema",
    "SubscriptionRecordSchema",
    "SubscriptionSchema",
    "SubscriptionStatisticsSchema",
    "StatisticsQuerySchema",
    "load_subscription",
    "load_subscriptions",
]
