"""JSON logging for the API and the services.

Every record leaving the process is one JSON object on stdout carrying the
request id and, once the bearer token has been resolved, the caller's user id.
Access tokens and API keys never reach the output: anything that looks like a
bearer token or a Supabase key is masked by :class:`JSONFormatter`.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_HEADERS = (REQUEST_ID_HEADER, "X-Correlation-ID")

# Record attributes copied into the payload when present
EXTRA_KEYS = ("endpoint", "elapsed_ms", "operation", "attempt", "session_id", "user_id")

# httpx logs every request line at INFO, including query strings
QUIET_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING}

MASK = "***"
_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[\w\-.~+/]+=*"),
    re.compile(r"(?i)((?:apikey|access_token|refresh_token|password)[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"),
    re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+"),  # bare JWT
)


def redact(text: str) -> str:
    """Mask bearer tokens, JWTs and credential-looking ``key=value`` pairs."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: (m.group(1) if m.groups() else "") + MASK, text)
    return text


class JSONFormatter(logging.Formatter):
    """Render log records as single-line, redacted JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": redact(record.getMessage()),
            "request_id": getattr(record, "request_id", None),
        }
        for key in EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = redact(self.formatException(record.exc_info))
        return json.dumps(payload, default=str, ensure_ascii=False)


class RequestContextFilter(logging.Filter):
    """Stamp records with the request id and the authenticated user, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = ensure_request_id()
            if getattr(record, "user_id", None) is None:
                record.user_id = g.get("user_id")
        else:
            record.request_id = getattr(record, "request_id", None)
        return True


def ensure_request_id() -> str:
    """Return the current request id, taken from a correlation header or generated.

    Outside a request a fresh id is returned on every call.
    """
    if not has_request_context():
        return str(uuid4())
    request_id = g.get("request_id")
    if request_id is None:
        incoming = (request.headers.get(name) for name in CORRELATION_HEADERS)
        request_id = next((value for value in incoming if value), None) or str(uuid4())
        g.request_id = request_id
    return request_id


def bind_user(user_id: str) -> None:
    """Attach the authenticated caller to every later record of this request."""
    g.user_id = user_id


def configure_logging(level: str | int = "INFO") -> None:
    """Install the JSON handler on the root logger.

    Service modules log through ``logging.getLogger(__name__)``; tenacity's
    ``before_sleep_log`` retry messages flow through the same handler.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def init_app(app: Flask) -> None:
    """Seed the request id on every request and echo it in the response."""

    @app.before_request
    def _seed_request_id() -> None:
        ensure_request_id()

    @app.after_request
    def _echo_request_id(response):
        response.headers.setdefault(REQUEST_ID_HEADER, ensure_request_id())
        return response


__all__ = [
    "JSONFormatter",
    "bind_user",
    "configure_logging",
    "ensure_request_id",
    "init_app",
    "redact",
]
