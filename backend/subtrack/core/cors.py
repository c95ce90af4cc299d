"""CORS configuration helper for API resources."""

from __future__ import annotations

from flask import Flask
from flask_cors import CORS

# Correlation headers must be readable by the web client
EXPOSED_HEADERS = ["X-Request-ID"]


def init_app(app: Flask) -> None:
    """Configure CORS for API endpoints based on application config.

    Parameters
    ----------
    app: flask.Flask
        Application whose ``CORS_ORIGINS`` and ``CORS_MAX_AGE`` settings are
        consulted. The configured ``SUBTRACK_SITE_URL`` is always allowed.
        When ``CORS_ORIGINS`` is ``"*"`` the policy allows any origin but
        disables credential support.
    """
    raw_origins = app.config.get("CORS_ORIGINS", "")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    wildcard = origins == ["*"]
    site_url = (app.config.get("SUBTRACK_SITE_URL") or "").rstrip("/")
    if not wildcard and site_url and site_url not in origins:
        origins.append(site_url)

    CORS(
        app,
        resources={r"/api/*": {"origins": "*" if wildcard else origins}},
        supports_credentials=not wildcard,
        expose_headers=EXPOSED_HEADERS,
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
        max_age=app.config.get("CORS_MAX_AGE", 600),
    )
