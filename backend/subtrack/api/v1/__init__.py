"""Version 1 of the SubTrack API."""

from __future__ import annotations

from flask import Blueprint

from .auth import bp as auth_bp
from .health import bp as health_bp
from .notifications import bp as notifications_bp
from .profile import bp as profile_bp
from .signup import bp as signup_bp
from .subscriptions import bp as subscriptions_bp

API_VERSION = "v1"

# (blueprint, prefix relative to /api/v1)
REGISTRY: list[tuple[Blueprint, str]] = [
    (health_bp, ""),
    (auth_bp, "/auth"),
    (signup_bp, "/signup"),
    (subscriptions_bp, "/subscriptions"),
    (notifications_bp, "/notifications"),
    (profile_bp, "/profile"),
]
