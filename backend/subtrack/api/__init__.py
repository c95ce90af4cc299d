"""HTTP API package; each version module exposes a blueprint ``REGISTRY``."""

from __future__ import annotations

from collections.abc import Iterable

from flask import Blueprint, Flask


def mount(app: Flask, prefix: str, entries: Iterable[tuple[Blueprint, str]]) -> None:
    """Register ``(blueprint, relative_prefix)`` pairs below ``prefix``.

    An empty relative prefix mounts the blueprint at ``prefix`` itself
    (``/api/v1/health`` rather than ``/api/v1/health/health``).
    """

    base = "/" + prefix.strip("/")
    for bp, rel_prefix in entries:
        rel = rel_prefix.strip("/")
        app.register_blueprint(bp, url_prefix=f"{base}/{rel}" if rel else base)


def init_app(app: Flask) -> None:
    """Mount the v1 API under ``API_BASE_PREFIX`` (``/api`` by default)."""

    from subtrack.api.v1 import API_VERSION, REGISTRY

    mount(app, f"{app.config.get('API_BASE_PREFIX', '/api').rstrip('/')}/{API_VERSION}", REGISTRY)


__all__ = ["init_app", "mount"]
