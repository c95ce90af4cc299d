"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app

from subtrack.api.deps import json_response, timing
from subtrack.core.extensions import get_signup_sessions

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application health and build information."""

    version = current_app.config.get("APP_VERSION", "dev")
    commit = current_app.config.get("APP_COMMIT", "unknown")
    payload = {
        "status": "ok",
        "version": version,
        "commit": commit,
        "signup_sessions": len(get_signup_sessions()),
    }
    return json_response(payload)
